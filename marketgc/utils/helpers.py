"""Shared utility functions.

utcnow:      timezone-aware "now" used for every stamp the collector writes
as_utc:      normalise DB datetimes (SQLite hands them back naive)
iso:         ISO-8601 rendering for API payloads, None-safe
parse_int:   strict integer coercion for ids and pagination values
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; convert aware ones to UTC.

    Every timestamp is stored as UTC wall-clock time, so a naive value read
    back from SQLite is UTC by construction.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_int(value) -> int | None:
    """Return ``value`` as an int, or None when it is not integer-like.

    Accepts ints and base-10 digit strings (with optional sign).
    Booleans and floats are rejected even though Python would coerce them.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 10)
        except ValueError:
            return None
    return None
