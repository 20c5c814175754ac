"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def day_start_utc(d: date) -> datetime:
    """Midnight UTC of a calendar date, used for paid/refunded timestamps."""
    return datetime.combine(d, time.min, tzinfo=timezone.utc)
