"""Time utilities for consistent timestamp and calendar-day handling."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def local_now(tz_name: str, now: datetime | None = None) -> datetime:
    """Return ``now`` (default: current time) in the given IANA time zone.

    Raises:
        ValueError: If ``now`` is naive.
    """
    now = now or utc_now()
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(ZoneInfo(tz_name))


def local_today(tz_name: str, now: datetime | None = None) -> date:
    """Calendar day in the given time zone."""
    return local_now(tz_name, now).date()


def rental_days(start: date, end: date) -> int:
    """Inclusive rental days: 10th to 12th is 3 days."""
    if end < start:
        raise ValueError("end date must not be before start date")
    return (end - start).days + 1
