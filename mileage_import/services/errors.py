from __future__ import annotations

from datetime import datetime

"""Exception taxonomy for import runs.

Run-level errors (configuration, duplicate file, unusable mapping) propagate
to the caller as the only result of process_import(). Per-day errors
(RoutingError and anything raised while deriving a day) are captured by the
execution loop and never escape it.
"""

__all__ = [
    "ImportProcessingError",
    "ConfigurationError",
    "DuplicateFileError",
    "MappingError",
    "RoutingError",
]


class ImportProcessingError(Exception):
    """Base exception for fatal import errors."""
    pass


class ConfigurationError(ImportProcessingError):
    """Routing key or default start address missing for the user."""


class MappingError(ImportProcessingError):
    """Header mapping cannot drive an import (e.g. no date column)."""


class DuplicateFileError(ImportProcessingError):
    """The same file bytes were already imported for this user (conflict)."""

    def __init__(self, file_hash: str, processed_at: datetime, record_count: int) -> None:
        self.file_hash = file_hash
        self.processed_at = processed_at
        self.record_count = record_count
        super().__init__(
            f"file already processed at {processed_at.isoformat()} "
            f"({record_count} records) hash={file_hash[:12]}"
        )


class RoutingError(Exception):
    """A routing provider call failed (bad address, quota, network)."""

    def __init__(self, message: str, status: str | None = None) -> None:
        self.status = status
        super().__init__(message)
