"""
Shared model helpers
"""
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Primary keys are UUID strings, matching the identity provider's user ids."""
    return str(uuid.uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC

    Some drivers (SQLite) return naive datetimes even for timezone-aware
    columns; those are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["SQLModel", "as_utc", "new_id", "utc_now"]
