"""
Helpers for idempotent processor decisions backed by the feeds_item linkage.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from feedsync.importer.targets import LINKAGE_TARGETS, normalize_unique_value

from .source import FeedSource, ParserResult
from .storage import EntityStorage

if TYPE_CHECKING:  # pragma: no cover
    from feedsync.importer.mapping import MappingRule
    from feedsync.importer.registry import TargetDescriptor

logger = logging.getLogger(__name__)

ValueResolver = Callable[[FeedSource, ParserResult, str], Any]


def resolve_existing_entity_id(
    storage: EntityStorage,
    source: FeedSource,
    result: ParserResult,
    mappings: Sequence["MappingRule"],
    targets: Mapping[str, "TargetDescriptor"],
    value_for: ValueResolver,
) -> int | None:
    """
    Return the id of a previously imported entity matching the current item.

    Unique rules are tried independently in configured order and the first
    one that finds a record wins. Empty values never match.
    """

    for rule in mappings:
        if not rule.unique:
            continue
        value = normalize_unique_value(value_for(source, result, rule.source))
        if value is None:
            continue

        if rule.target in LINKAGE_TARGETS:
            rows = storage.query_linkage(source, limit=1, **{rule.target: value})
            entity_id = rows[0].entity_id if rows else None
        else:
            descriptor = targets.get(rule.target)
            if descriptor is None or descriptor.unique_lookup is None:
                logger.debug("Target %s has no unique lookup; skipping rule", rule.target)
                continue
            entity_id = descriptor.unique_lookup(storage, source, value)

        if entity_id:
            return int(entity_id)
    return None
