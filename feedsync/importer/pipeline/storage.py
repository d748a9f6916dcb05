"""
Storage collaborator used by the processor and the clear controller.

``SQLAlchemyEntityStorage`` commits once per saved record and once per
deleted page; no transaction spans a whole batch.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from feedsync.importer.errors import StorageError
from feedsync.models import FeedItem, ImportedEntity, db

from .source import FeedSource

logger = logging.getLogger(__name__)

FATAL_ERRORS = (OperationalError, DisconnectionError)


class EntityStorage(ABC):
    """Create/load/save/delete primitives plus linkage queries."""

    entity_kind: str

    @abstractmethod
    def new_entity(self, source: FeedSource) -> ImportedEntity:
        ...

    @abstractmethod
    def load_entity(self, source: FeedSource, entity_id: int) -> ImportedEntity | None:
        ...

    @abstractmethod
    def save_entity(self, record: ImportedEntity) -> None:
        ...

    def discard(self, record: ImportedEntity | None) -> None:
        """Drop unsaved changes made to ``record``."""

    @abstractmethod
    def delete_entities(self, entity_ids: Iterable[int]) -> int:
        ...

    @abstractmethod
    def count_linkage(self, source: FeedSource, *, imported_before: datetime | None = None) -> int:
        ...

    @abstractmethod
    def query_linkage(
        self,
        source: FeedSource,
        *,
        limit: int | None = None,
        imported_before: datetime | None = None,
        **filters: Any,
    ) -> list[FeedItem]:
        ...

    @abstractmethod
    def find_by_field(self, source: FeedSource, field: str, value: Any) -> int | None:
        ...

    @abstractmethod
    def get_hash(self, entity_id: int | None) -> str:
        ...


class SQLAlchemyEntityStorage(EntityStorage):
    """Stores ``ImportedEntity`` rows and their ``FeedItem`` linkage."""

    def __init__(self, entity_kind: str, session: Session | None = None) -> None:
        self.entity_kind = entity_kind
        self._session = session

    @property
    def session(self) -> Session:
        return self._session if self._session is not None else db.session

    def new_entity(self, source: FeedSource) -> ImportedEntity:
        record = ImportedEntity(entity_kind=self.entity_kind, status=True)
        record.feed_item = FeedItem(
            entity_type=self.entity_kind,
            processor_id=source.processor_id,
            origin_id=source.origin_id,
            fingerprint="",
        )
        return record

    def load_entity(self, source: FeedSource, entity_id: int) -> ImportedEntity | None:
        record = self.session.get(
            ImportedEntity,
            entity_id,
            options=[selectinload(ImportedEntity.feed_item)],
        )
        if record is None or record.entity_kind != self.entity_kind:
            return None
        if record.feed_item is None:
            record.feed_item = FeedItem(
                entity_type=self.entity_kind,
                entity_id=record.id,
                processor_id=source.processor_id,
                origin_id=source.origin_id,
                fingerprint="",
            )
        return record

    def save_entity(self, record: ImportedEntity) -> None:
        session = self.session
        try:
            session.add(record)
            session.commit()
        except FATAL_ERRORS as exc:
            session.rollback()
            raise StorageError(f"Database unavailable while saving {record!r}: {exc}", fatal=True) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to save {record!r}: {exc.__class__.__name__}: {exc}") from exc

    def discard(self, record: ImportedEntity | None) -> None:
        self.session.rollback()

    def delete_entities(self, entity_ids: Iterable[int]) -> int:
        ids = sorted({int(entity_id) for entity_id in entity_ids})
        if not ids:
            return 0
        session = self.session
        try:
            session.query(FeedItem).filter(
                FeedItem.entity_type == self.entity_kind,
                FeedItem.entity_id.in_(ids),
            ).delete(synchronize_session=False)
            deleted = (
                session.query(ImportedEntity)
                .filter(ImportedEntity.entity_kind == self.entity_kind, ImportedEntity.id.in_(ids))
                .delete(synchronize_session=False)
            )
            session.commit()
        except FATAL_ERRORS as exc:
            session.rollback()
            raise StorageError(f"Database unavailable while deleting entities: {exc}", fatal=True) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to delete entities {ids}: {exc}") from exc
        session.expire_all()
        logger.debug("Deleted %s %s entities (%s requested)", deleted, self.entity_kind, len(ids))
        return len(ids)

    def _scoped(self, query, source: FeedSource, imported_before: datetime | None):
        query = query.filter(
            FeedItem.processor_id == source.processor_id,
            FeedItem.origin_id == source.origin_id,
            FeedItem.entity_type == self.entity_kind,
        )
        if imported_before is not None:
            query = query.filter(FeedItem.imported_at < imported_before)
        return query

    def count_linkage(self, source: FeedSource, *, imported_before: datetime | None = None) -> int:
        query = self._scoped(self.session.query(func.count(FeedItem.id)), source, imported_before)
        return int(query.scalar() or 0)

    def query_linkage(
        self,
        source: FeedSource,
        *,
        limit: int | None = None,
        imported_before: datetime | None = None,
        **filters: Any,
    ) -> list[FeedItem]:
        query = self._scoped(self.session.query(FeedItem), source, imported_before)
        for name, value in filters.items():
            column = getattr(FeedItem, name, None)
            if column is None:
                raise StorageError(f"Unknown linkage column {name!r}.")
            query = query.filter(column == value)
        query = query.order_by(FeedItem.id.asc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def find_by_field(self, source: FeedSource, field: str, value: Any) -> int | None:
        """First entity of this kind imported for ``source`` whose ``field`` equals ``value``."""

        query = self._scoped(
            self.session.query(ImportedEntity.id).join(FeedItem, FeedItem.entity_id == ImportedEntity.id),
            source,
            None,
        ).filter(ImportedEntity.entity_kind == self.entity_kind)
        if field in ImportedEntity.COLUMN_FIELDS:
            query = query.filter(getattr(ImportedEntity, field) == value)
        else:
            query = query.filter(ImportedEntity.fields_json[field].as_string() == str(value))
        row = query.order_by(ImportedEntity.id.asc()).first()
        return row[0] if row is not None else None

    def get_hash(self, entity_id: int | None) -> str:
        if not entity_id:
            return ""
        fingerprint = (
            self.session.query(FeedItem.fingerprint)
            .filter(FeedItem.entity_type == self.entity_kind, FeedItem.entity_id == entity_id)
            .scalar()
        )
        return fingerprint or ""
