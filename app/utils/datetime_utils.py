"""
Datetime utilities.

Provides timezone-aware datetime functions and budget period boundaries.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC.

    Some drivers (SQLite) hand back naive datetimes for timezone-aware
    columns; those are stored as UTC wall-clock time.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from earlier to later (negative if reversed)."""
    return (as_utc(later) - as_utc(earlier)).total_seconds() / 86400


def period_start(period_type: str, now: datetime) -> datetime:
    """
    Start of the budget period containing now.

    daily: midnight UTC, weekly: Monday midnight UTC, monthly: first of month.

    Raises:
        ValueError: If period_type is unknown
    """
    now = as_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period_type == "daily":
        return midnight
    if period_type == "weekly":
        return midnight - timedelta(days=midnight.weekday())
    if period_type == "monthly":
        return midnight.replace(day=1)
    raise ValueError(f"Unknown period type: {period_type}")
