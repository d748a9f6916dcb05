"""JSON adapter that turns an already-parsed item dump into a parser result.

Accepts either a JSON document (an array of objects, or an object with an
``items`` array plus optional ``link``/``title``) or JSON lines with one
object per line.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator, Mapping

from feedsync.importer.pipeline.source import ParserResult


class JSONItemsError(Exception):
    """Base exception for JSON item adapter failures."""


class JSONItemsLineError(JSONItemsError):
    """Raised when a JSON lines entry cannot be decoded."""

    def __init__(self, line_number: int, message: str) -> None:
        super().__init__(f"Line {line_number}: {message}")
        self.line_number = line_number


def _ensure_item(value: Any, position: int) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise JSONItemsError(f"Item {position} must be an object, got {type(value).__name__}.")
    return value


def _iter_json_lines(text: str) -> Iterator[Mapping[str, Any]]:
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            raise JSONItemsLineError(line_number, exc.msg) from exc
        yield _ensure_item(payload, line_number)


def parse_items(text: str) -> ParserResult:
    """Parse JSON or JSON lines ``text`` into a ``ParserResult``."""

    stripped = text.strip()
    if not stripped:
        return ParserResult()

    try:
        document = json.loads(stripped)
    except json.JSONDecodeError:
        return ParserResult(list(_iter_json_lines(stripped)))

    if isinstance(document, list):
        return ParserResult([_ensure_item(entry, index) for index, entry in enumerate(document, start=1)])
    if isinstance(document, Mapping) and isinstance(document.get("items"), list):
        items = [_ensure_item(entry, index) for index, entry in enumerate(document["items"], start=1)]
        return ParserResult(items, link=document.get("link"), title=document.get("title"))
    if isinstance(document, Mapping):
        # A single JSON lines row is also a valid JSON document.
        return ParserResult([document])
    raise JSONItemsError(f"Unsupported JSON document of type {type(document).__name__}.")


def load_items(path: str | Path) -> ParserResult:
    path = Path(path)
    if not path.exists():
        raise JSONItemsError(f"Items file not found at {path}")
    return parse_items(path.read_text(encoding="utf-8"))
