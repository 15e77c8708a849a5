"""Datetime utilities."""

from datetime import datetime, timezone

from dateutil.parser import parse as parse_date

SQL_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    """Current time in UTC, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def normalize_datetime(value) -> datetime | None:
    """Parse a datetime from a datetime, epoch seconds or string; naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, timezone.utc)
    else:
        dt = parse_date(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_sql(value) -> str | None:
    """Format a datetime the way SQLite's CURRENT_TIMESTAMP does."""
    dt = normalize_datetime(value)
    if dt is None:
        return None
    return dt.strftime(SQL_FORMAT)


def to_http(value) -> str | None:
    """Format a datetime as an HTTP date (RFC 7231)."""
    dt = normalize_datetime(value)
    if dt is None:
        return None
    return dt.strftime("%a, %d %b %Y %H:%M:%S GMT")
