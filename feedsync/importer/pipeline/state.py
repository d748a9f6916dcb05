"""
Resumable run state shared by the import, clear and expire batch steps.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping

PROGRESS_COMPLETE = 1.0


@dataclass
class RunState:
    """Counters and progress for one batch cycle, persisted between steps."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    unchanged: int = 0
    skipped: int = 0
    deleted: int = 0
    total: int = 0
    pointer: int = 0
    progress: float = 0.0

    def update_progress(self, total: int, done: int) -> None:
        if total > 0 and done < total:
            progress = round(done / total, 2)
            # Never report completion while work remains.
            self.progress = min(progress, 0.99)
        else:
            self.progress = PROGRESS_COMPLETE

    @property
    def is_complete(self) -> bool:
        return self.progress >= PROGRESS_COMPLETE

    def counts(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "deleted": self.deleted,
        }

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "RunState":
        if not payload:
            return cls()
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})
