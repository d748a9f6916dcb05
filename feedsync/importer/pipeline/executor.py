"""
Projects source values onto target records according to mapping rules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Sequence

from feedsync.importer.targets import LINKAGE_TARGETS, normalize_unique_value

from .source import FeedSource, MappingSource, ParserResult, SourceAccessor

if TYPE_CHECKING:  # pragma: no cover
    from feedsync.importer.mapping import MappingRule
    from feedsync.importer.registry import TargetCallback, TargetDescriptor
    from feedsync.models import ImportedEntity


def set_target_element(source: FeedSource, record: "ImportedEntity", target: str, value: Any, mapping=None) -> None:
    """Default setter: unique keys go onto the linkage, the rest onto the record."""

    if target in LINKAGE_TARGETS:
        link = record.feed_item
        if link is None:
            return
        setattr(link, target, normalize_unique_value(value))
        return
    record.set_field(target, value)


def clear_target_element(record: "ImportedEntity", field_name: str) -> None:
    if field_name in LINKAGE_TARGETS:
        if record.feed_item is not None:
            setattr(record.feed_item, field_name, None)
        return
    record.clear_field(field_name)


class MappingExecutor:
    def __init__(
        self,
        targets: Mapping[str, "TargetDescriptor"],
        sources: Mapping[str, MappingSource] | None = None,
        accessor: SourceAccessor | None = None,
    ) -> None:
        self.targets = targets
        self.sources = sources or {}
        self.accessor = accessor or SourceAccessor()

    def source_value(self, source: FeedSource, result: ParserResult, key: str) -> Any:
        mapping_source = self.sources.get(key)
        if mapping_source is not None and mapping_source.callback is not None:
            return mapping_source.callback(source, result, key)
        return self.accessor.get_source_element(source, result, key)

    def setter_for(self, target: str) -> "TargetCallback":
        descriptor = self.targets.get(target)
        if descriptor is not None and callable(descriptor.callback):
            return descriptor.callback
        return set_target_element

    def apply(
        self,
        source: FeedSource,
        result: ParserResult,
        record: "ImportedEntity",
        mappings: Sequence["MappingRule"],
    ) -> "ImportedEntity":
        for rule in mappings:
            descriptor = self.targets.get(rule.target)
            clear_target_element(record, descriptor.field_name if descriptor is not None else rule.target)

        for rule in mappings:
            value = self.source_value(source, result, rule.source)
            self.setter_for(rule.target)(source, record, rule.target, value, rule)
        return record
