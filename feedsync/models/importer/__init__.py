"""
Importer-specific SQLAlchemy models: run state and the feed item linkage.
"""

from .schema import FeedItem, ImportRun, ImportRunKind, ImportRunStatus

__all__ = [
    "FeedItem",
    "ImportRun",
    "ImportRunKind",
    "ImportRunStatus",
]
