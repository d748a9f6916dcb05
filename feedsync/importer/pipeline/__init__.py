"""Importer pipeline helpers."""

from __future__ import annotations

from .clear import ClearController
from .executor import MappingExecutor, clear_target_element, set_target_element
from .fingerprint import compute_fingerprint
from .idempotency import resolve_existing_entity_id
from .processor import ErrorKind, FeedsProcessor, ItemResult, ItemStatus, ProcessMessage
from .source import FeedSource, MappingSource, ParserResult, SourceAccessor
from .state import RunState
from .storage import EntityStorage, SQLAlchemyEntityStorage

__all__ = [
    "ClearController",
    "EntityStorage",
    "ErrorKind",
    "FeedSource",
    "FeedsProcessor",
    "ItemResult",
    "ItemStatus",
    "MappingExecutor",
    "MappingSource",
    "ParserResult",
    "ProcessMessage",
    "RunState",
    "SQLAlchemyEntityStorage",
    "SourceAccessor",
    "clear_target_element",
    "compute_fingerprint",
    "resolve_existing_entity_id",
    "set_target_element",
]
