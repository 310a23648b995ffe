"""Date manipulation utilities"""

from datetime import date, datetime, timezone, tzinfo


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps (e.g. read back from SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def local_date(value: datetime, tz: tzinfo) -> date:
    """Calendar date of a timestamp in the given timezone"""
    return ensure_utc(value).astimezone(tz).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
