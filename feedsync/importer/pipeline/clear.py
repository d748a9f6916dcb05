"""
Batched deletion of entities previously imported for one origin.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from feedsync.importer.mapping import EXPIRE_NEVER, ProcessorConfig
from feedsync.importer.metrics import record_deleted

from .processor import ProcessMessage
from .source import FeedSource
from .state import RunState
from .storage import EntityStorage

logger = logging.getLogger(__name__)


class ClearController:
    """Deletes linkage-scoped entities in pages of ``process_limit`` rows."""

    def __init__(self, config: ProcessorConfig, storage: EntityStorage) -> None:
        self.config = config
        self.storage = storage

    @property
    def page_size(self) -> int:
        return self.config.process_limit

    def clear(self, source: FeedSource, state: RunState) -> float:
        """Delete the next page of imported entities and return the progress."""

        self._sweep(source, state, imported_before=None)
        return state.progress

    def expire(self, source: FeedSource, state: RunState, max_age: int | None = None) -> float:
        """
        Delete the next page of entities imported more than ``max_age``
        seconds ago. ``-1`` disables expiry.
        """

        if max_age is None:
            max_age = self.config.expire_after
        if max_age == EXPIRE_NEVER:
            state.update_progress(0, 0)
            return state.progress
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age)
        self._sweep(source, state, imported_before=cutoff, operation="expire")
        return state.progress

    def _sweep(
        self,
        source: FeedSource,
        state: RunState,
        *,
        imported_before: datetime | None,
        operation: str = "clear",
    ) -> None:
        if not state.total:
            state.total = self.storage.count_linkage(source, imported_before=imported_before)

        remaining = state.total - state.deleted
        if remaining <= 0:
            state.update_progress(state.total, state.deleted)
            return

        limit = remaining if self.page_size == 0 else min(self.page_size, remaining)
        rows = self.storage.query_linkage(source, limit=limit, imported_before=imported_before)
        if not rows:
            # The scope shrank since the total was counted.
            state.update_progress(state.total, state.total)
            return

        self.storage.delete_entities(row.entity_id for row in rows)
        state.deleted += len(rows)
        record_deleted(self.config.id, len(rows), operation=operation)
        state.update_progress(state.total, state.deleted)

    def _label(self, count: int) -> str:
        return self.config.entity_kind if count == 1 else f"{self.config.entity_kind}s"

    def report(self, state: RunState, *, operation: str = "clear") -> list[ProcessMessage]:
        verb = "Expired" if operation == "expire" else "Deleted"
        if state.deleted:
            message = ProcessMessage("status", f"{verb} {state.deleted} {self._label(state.deleted)}.")
        else:
            message = ProcessMessage("status", f"There are no {self._label(0)} to be {verb.lower()}.")
        logger.info("%s: %s", self.config.id, message.text)
        return [message]
