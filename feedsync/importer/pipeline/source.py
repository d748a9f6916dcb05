"""
Source-side collaborators: the parsed item stream, the origin being
imported, and accessors that pull raw values out of the current item.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, MutableMapping

if TYPE_CHECKING:  # pragma: no cover
    from feedsync.importer.mapping import ProcessorConfig


class ParserResult:
    """
    Stream of raw items produced by a parser for one origin.

    Items are consumed destructively with ``shift_item``; the most recently
    shifted item stays available as ``current_item`` for source accessors.
    """

    def __init__(self, items: Iterable[Mapping[str, Any]] = (), *, link: str | None = None, title: str | None = None):
        self._items: deque[Mapping[str, Any]] = deque(items)
        self.link = link
        self.title = title
        self.current_item: Mapping[str, Any] | None = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[Mapping[str, Any]]:
        return list(self._items)

    def has_next(self) -> bool:
        return bool(self._items)

    def shift_item(self) -> Mapping[str, Any] | None:
        if not self._items:
            self.current_item = None
            return None
        self.current_item = self._items.popleft()
        return self.current_item


@dataclass
class FeedSource:
    """The origin an import or clear cycle is scoped to."""

    processor_id: str
    origin_id: int = 0
    config: "ProcessorConfig | None" = None
    context: MutableMapping[str, Any] = field(default_factory=dict)


SourceCallback = Callable[[FeedSource, ParserResult, str], Any]


@dataclass(frozen=True)
class MappingSource:
    """A named source field, optionally backed by a dedicated value callback."""

    name: str
    callback: SourceCallback | None = None
    description: str = ""


class SourceAccessor:
    """Default accessor returning the raw value stored under a source key."""

    missing_value: Any = ""

    def get_source_element(self, source: FeedSource, result: ParserResult, key: str) -> Any:
        item = result.current_item or {}
        value = item.get(key)
        return self.missing_value if value is None else value
