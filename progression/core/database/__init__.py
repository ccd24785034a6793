"""Database infrastructure: declarative base, column types and the DatabaseService."""

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime, utc_now
from progression.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseService",
    "IdMixin",
    "TimestampMixin",
    "UTCDateTime",
    "utc_now",
]
