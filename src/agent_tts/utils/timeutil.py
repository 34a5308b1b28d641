"""Timezone helpers. Everything stored is UTC."""

from datetime import UTC, datetime
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (as read back from SQLite) or convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=UTC)
