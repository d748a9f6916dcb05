"""
Exception taxonomy for importer processing.

Item-scoped errors (validation, access, non-fatal storage) are converted to
failed item results by the processor; configuration errors and fatal storage
errors propagate out of the batch step.
"""

from __future__ import annotations


class ImporterError(Exception):
    """Base class for importer domain errors."""


class ConfigurationError(ImporterError):
    """Raised when a processor configuration or mapping cannot be used."""


class ValidationError(ImporterError):
    """Raised when a mapped record fails validation."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class AccessError(ImporterError):
    """Raised when the access policy rejects saving a record."""


class StorageError(ImporterError):
    """
    Raised by the storage collaborator when a persistence call fails.

    ``fatal`` marks connection-level faults that must halt the batch.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal
