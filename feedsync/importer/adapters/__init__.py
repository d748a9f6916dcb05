"""Importer adapters that feed parsed items into processors."""

from __future__ import annotations

from .json_items import JSONItemsError, JSONItemsLineError, load_items, parse_items

__all__ = [
    "JSONItemsError",
    "JSONItemsLineError",
    "load_items",
    "parse_items",
]
