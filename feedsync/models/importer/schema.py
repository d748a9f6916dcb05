"""
SQLAlchemy models for importer bookkeeping.

``FeedItem`` links every imported record to the processor and origin that
produced it; ``ImportRun`` keeps the resumable state of a batch cycle
between scheduler steps.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Enum, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ImportRunKind(str, enum.Enum):
    """Batch operation driven by a run."""

    IMPORT = "import"
    CLEAR = "clear"
    EXPIRE = "expire"


class ImportRun(BaseModel):
    """Metadata and resumable state for a single importer batch cycle."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    processor_id: Mapped[str] = mapped_column(db.String(128), nullable=False, index=True)
    origin_id: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    kind: Mapped[ImportRunKind] = mapped_column(
        Enum(ImportRunKind, name="import_run_kind_enum"),
        nullable=False,
        default=ImportRunKind.IMPORT,
    )
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.PENDING,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    state_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Run state persisted between batch steps; cleared on completion.",
    )
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    messages_json: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    ingest_params_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Stored parameters for resuming the run (config_path, items_path, max_age).",
    )

    __table_args__ = (Index("idx_import_runs_processor_origin", "processor_id", "origin_id", "kind"),)

    def mark_running(self) -> None:
        self.status = ImportRunStatus.RUNNING
        self.started_at = self.started_at or datetime.now(timezone.utc)

    def mark_failed(self, message: str) -> None:
        self.status = ImportRunStatus.FAILED
        self.error_summary = message
        self.finished_at = datetime.now(timezone.utc)


class FeedItem(BaseModel):
    """Links an imported record to its origin, fingerprint and unique keys."""

    __tablename__ = "feeds_item"

    # Transient flag; presave hooks set it to drop an item without saving.
    skip = False

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(db.String(64), nullable=False)
    entity_id: Mapped[int] = mapped_column(db.Integer, nullable=False)
    processor_id: Mapped[str] = mapped_column(db.String(128), nullable=False)
    origin_id: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    imported_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    fingerprint: Mapped[str] = mapped_column(db.String(32), nullable=False, default="")
    url: Mapped[str | None] = mapped_column(db.String(1024), nullable=True)
    guid: Mapped[str | None] = mapped_column(db.String(1024), nullable=True)

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_feeds_item_entity"),
        Index("idx_feeds_item_scope", "processor_id", "origin_id", "entity_type"),
        Index("idx_feeds_item_scope_url", "processor_id", "origin_id", "entity_type", "url"),
        Index("idx_feeds_item_scope_guid", "processor_id", "origin_id", "entity_type", "guid"),
        Index("idx_feeds_item_imported", "processor_id", "imported_at"),
    )

    def __repr__(self):
        return f"<FeedItem {self.processor_id}:{self.origin_id} {self.entity_type}:{self.entity_id}>"

    def stamp(self, *, fingerprint: str, imported_at: datetime | None = None) -> None:
        """Record a fresh fingerprint and import time for the linked record."""

        self.fingerprint = fingerprint
        self.imported_at = imported_at or datetime.now(timezone.utc)

    def as_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "processor_id": self.processor_id,
            "origin_id": self.origin_id,
            "imported_at": self.imported_at.isoformat() if self.imported_at else None,
            "fingerprint": self.fingerprint,
            "url": self.url,
            "guid": self.guid,
        }
