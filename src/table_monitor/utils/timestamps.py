"""UTC timestamp helpers shared by the store, reader and sink."""

from datetime import datetime, timezone

# Watermark used when a source has never run.
EPOCH_FLOOR = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """Convert to the naive UTC form stored in timestamp columns."""
    return to_utc(value).replace(tzinfo=None)


def format_utc(value: datetime) -> str:
    """ISO 8601 with a trailing Z, e.g. 2026-10-19T10:00:00Z."""
    return to_naive_utc(value).isoformat() + 'Z'
