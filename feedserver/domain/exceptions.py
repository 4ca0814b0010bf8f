"""
Exception hierarchy for the feed server.

    FeedError (base)
        ├── InvalidPackageError     - uploaded archive cannot be read as a package
        ├── StorageConflictError    - different bytes already stored under a key
        └── PackageIngestionError   - infrastructure failure while ingesting a package

Only ``PackageIngestionError`` escapes the indexing service; the other two are
raised by collaborators and either mapped to an outcome or wrapped.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class FeedError(Exception):
    """
    Base exception carrying a machine-readable error code and extra context.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "FEED_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class InvalidPackageError(FeedError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, error_code="INVALID_PACKAGE", details=details)


class StorageConflictError(FeedError):
    def __init__(self, path: str) -> None:
        super().__init__(
            f"A different file already exists at '{path}'",
            error_code="STORAGE_CONFLICT",
            details={"path": path},
        )


class IngestionStage(str, Enum):
    """Pipeline stage in which an infrastructure failure was observed."""

    RESOLVE = "resolve"
    STORAGE = "storage"
    DATABASE = "database"
    SEARCH = "search"


class PackageIngestionError(FeedError):
    """
    Fatal failure of one ingestion attempt.

    Never downgraded to one of the soft outcomes: callers are expected to
    report a server-side error. The original exception, if any, is chained
    as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        stage: IngestionStage,
        package_id: str,
        package_version: str,
    ) -> None:
        super().__init__(
            message,
            error_code=f"INGESTION_{stage.value.upper()}_FAILED",
            details={
                "stage": stage.value,
                "package_id": package_id,
                "package_version": package_version,
            },
        )
        self.stage = stage
        self.package_id = package_id
        self.package_version = package_version
