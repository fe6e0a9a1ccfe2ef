"""Utilities for working with timestamps in UTC."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into a UTC ``datetime``."""

    if value in (None, ""):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


__all__ = ["utc_now", "utc_today", "ensure_utc", "parse_timestamp"]
