"""
Built-in mapping targets for imported entities.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping

from feedsync.importer.errors import ValidationError
from feedsync.importer.registry import TargetDescriptor, TargetMap

if TYPE_CHECKING:  # pragma: no cover
    from feedsync.importer.mapping import MappingRule
    from feedsync.importer.pipeline.source import FeedSource
    from feedsync.importer.pipeline.storage import EntityStorage
    from feedsync.models import ImportedEntity

LINKAGE_TARGETS = ("url", "guid")

_TRUE_VALUES = {"1", "true", "yes", "y", "on", "published"}
_FALSE_VALUES = {"0", "false", "no", "n", "off", "unpublished"}


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == ()


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def normalize_unique_value(value: Any) -> str | None:
    """Canonical form of a unique key, shared by the linkage setter and lookups."""

    value = _first(value)
    if value is None:
        return None
    return str(value).strip() or None


def _from_timestamp(value: Any, original: Any) -> datetime:
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError(f"Timestamp out of range: {original!r}") from exc


def set_text(source: "FeedSource", record: "ImportedEntity", target: str, value: Any, mapping: "MappingRule") -> None:
    value = _first(value)
    if _is_empty(value):
        return
    record.set_field(target, str(value).strip())


def set_status(source: "FeedSource", record: "ImportedEntity", target: str, value: Any, mapping: "MappingRule") -> None:
    value = _first(value)
    if _is_empty(value):
        return
    if isinstance(value, bool):
        record.set_field(target, value)
        return
    token = str(value).strip().lower()
    if token in _TRUE_VALUES:
        record.set_field(target, True)
    elif token in _FALSE_VALUES:
        record.set_field(target, False)
    else:
        raise ValidationError(f"Invalid status value {value!r}.", field=target)


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO-8601 strings, epoch seconds and datetimes into aware UTC datetimes."""

    value = _first(value)
    if _is_empty(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = _from_timestamp(value, value)
    else:
        text = str(value).strip()
        if text.isdigit():
            parsed = _from_timestamp(int(text), value)
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError as exc:
                raise ValueError(f"Unrecognized date value {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def set_datetime(source: "FeedSource", record: "ImportedEntity", target: str, value: Any, mapping: "MappingRule") -> None:
    try:
        parsed = parse_datetime(value)
    except (ValueError, OverflowError, OSError) as exc:
        raise ValidationError(str(exc), field=target) from exc
    if parsed is not None:
        record.set_field(target, parsed)


def list_field_setter(cardinality: int | None = None):
    """
    Build a setter that appends values to a list field.

    Values beyond ``cardinality`` are dropped; ``None`` means unbounded.
    A mapping may lower the limit with an integer ``cardinality`` option.
    """

    def setter(source: "FeedSource", record: "ImportedEntity", target: str, value: Any, mapping: "MappingRule") -> None:
        limit = cardinality
        configured = mapping.extra.get("cardinality") if mapping is not None else None
        if configured is not None:
            limit = int(configured) if limit is None else min(limit, int(configured))

        values = value if isinstance(value, (list, tuple)) else [value]
        current = list(record.get_field(target) or [])
        for entry in values:
            if _is_empty(entry):
                continue
            if limit is not None and len(current) >= limit:
                break
            current.append(str(entry).strip())
        record.set_field(target, current)

    return setter


def find_by_title(storage: "EntityStorage", source: "FeedSource", value: Any) -> int | None:
    value = normalize_unique_value(value)
    if value is None:
        return None
    return storage.find_by_field(source, "title", value)


class CoreTargets:
    """Columns every imported entity carries."""

    def alter_targets(self, targets: TargetMap, entity_kind: str, context: Mapping[str, Any]) -> None:
        targets["title"] = TargetDescriptor(
            id="title",
            name="Title",
            description=f"The title of the {entity_kind}.",
            callback=set_text,
            optional_unique=True,
            unique_lookup=find_by_title,
        )
        targets["body"] = TargetDescriptor(id="body", name="Body", description="The main text.")
        targets["author"] = TargetDescriptor(
            id="author",
            name="Author",
            description="Name of the author.",
            callback=set_text,
        )
        targets["status"] = TargetDescriptor(
            id="status",
            name="Published status",
            description="Whether the record is published (1) or not (0).",
            callback=set_status,
        )
        targets["published_at"] = TargetDescriptor(
            id="published_at",
            name="Published date",
            description="ISO-8601 date or UNIX timestamp.",
            callback=set_datetime,
        )


class LinkageTargets:
    """Unique keys stored on the feed item linkage row."""

    def alter_targets(self, targets: TargetMap, entity_kind: str, context: Mapping[str, Any]) -> None:
        targets["url"] = TargetDescriptor(
            id="url",
            name="URL",
            description="The external URL of the item, e.g. the feed item URL.",
            optional_unique=True,
        )
        targets["guid"] = TargetDescriptor(
            id="guid",
            name="GUID",
            description="The globally unique identifier of the item.",
            optional_unique=True,
        )


class TaxonomyTargets:
    """List-valued targets with cardinality limits."""

    def alter_targets(self, targets: TargetMap, entity_kind: str, context: Mapping[str, Any]) -> None:
        targets["tags"] = TargetDescriptor(
            id="tags",
            name="Tags",
            description="Free tagging terms.",
            callback=list_field_setter(),
        )
        targets["category"] = TargetDescriptor(
            id="category",
            name="Category",
            description="A single category term.",
            callback=list_field_setter(1),
        )


def default_contributors() -> list:
    return [CoreTargets(), LinkageTargets(), TaxonomyTargets()]
