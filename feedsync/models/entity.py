# feedsync/models/entity.py

"""
Target records produced by feed imports.

Known fields live in dedicated columns; anything else a mapping writes is
kept in ``fields_json`` so extension targets do not require migrations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class ImportedEntity(BaseModel):
    """A record created or updated by an importer processor."""

    __tablename__ = "imported_entities"

    COLUMN_FIELDS = ("title", "body", "author", "status", "published_at")

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    entity_kind: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    body: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    author: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    status: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    published_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    fields_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Values for mapping targets without a dedicated column.",
    )

    feed_item = relationship(
        "FeedItem",
        primaryjoin="ImportedEntity.id == foreign(FeedItem.entity_id)",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_imported_entities_kind_title", "entity_kind", "title"),)

    def __repr__(self):
        return f"<ImportedEntity {self.entity_kind}:{self.id}>"

    @property
    def is_new(self) -> bool:
        return self.id is None

    def get_field(self, name: str, default: Any = None) -> Any:
        if name in self.COLUMN_FIELDS:
            value = getattr(self, name)
            return default if value is None else value
        return (self.fields_json or {}).get(name, default)

    def set_field(self, name: str, value: Any) -> None:
        if name in self.COLUMN_FIELDS:
            setattr(self, name, value)
            return
        # JSON columns only track reassignment, never in-place mutation.
        extra = dict(self.fields_json or {})
        extra[name] = value
        self.fields_json = extra

    def clear_field(self, name: str) -> None:
        if name == "status":
            self.status = True
        elif name in self.COLUMN_FIELDS:
            setattr(self, name, None)
        elif self.fields_json and name in self.fields_json:
            extra = dict(self.fields_json)
            extra.pop(name, None)
            self.fields_json = extra

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "entity_kind": self.entity_kind,
        }
        for name in self.COLUMN_FIELDS:
            payload[name] = getattr(self, name)
        payload["fields"] = dict(self.fields_json or {})
        link = self.feed_item
        payload["feed_item"] = link.as_dict() if link is not None else None
        return payload
