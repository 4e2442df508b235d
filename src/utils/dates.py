"""
UTC helpers.

SQLite (tests) hands back naive datetimes for timezone-aware columns,
PostgreSQL returns aware ones. Everything stored is UTC.
"""

from datetime import datetime, date, timedelta, UTC


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_today(now: datetime = None) -> date:
    return (now or utcnow()).astimezone(UTC).date()


def period_start(period: str, now: datetime = None) -> datetime:
    """
    Start of a leaderboard window

    Args:
        period: daily (since midnight UTC), weekly (last 7 days), monthly (last 30 days)
    """
    now = now or utcnow()
    if period == "daily":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "weekly":
        return now - timedelta(days=7)
    if period == "monthly":
        return now - timedelta(days=30)
    raise ValueError(f"Unknown period: {period}")
