# feedsync/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .entity import ImportedEntity
from .importer import FeedItem, ImportRun, ImportRunKind, ImportRunStatus

__all__ = [
    "db",
    "BaseModel",
    "ImportedEntity",
    "FeedItem",
    "ImportRun",
    "ImportRunKind",
    "ImportRunStatus",
]
