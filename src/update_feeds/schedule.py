"""Next-fetch scheduling for feeds."""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from common.datetime import normalize_datetime, utcnow
from update_feeds.models import FeedItem

DEFAULT_INTERVAL = timedelta(hours=1)


def normalize_interval(seconds: float) -> timedelta:
    """Map the time since a feed last changed to a polling back-off."""
    if seconds < 30 * 60:
        return timedelta(minutes=15)
    if seconds < 60 * 60:
        return timedelta(minutes=30)
    if seconds < 3 * 60 * 60:
        return timedelta(hours=1)
    if seconds >= 36 * 60 * 60:
        return timedelta(days=1)
    return timedelta(hours=3)


def gather_dates(items: Iterable[FeedItem]) -> list[datetime]:
    """Distinct item dates, newest first; each item contributes its update date, else its publish date."""
    dates = set()
    for item in items:
        date = item.updated or item.published
        if date is not None:
            dates.add(normalize_datetime(date))
    return sorted(dates, reverse=True)


def compute_last_modified(items: Iterable[FeedItem]) -> Optional[datetime]:
    """Newest item date, for servers that send no Last-Modified header."""
    dates = gather_dates(items)
    return dates[0] if dates else None


def next_fetch(
    modified: bool,
    last_modified: Optional[datetime],
    items: Iterable[FeedItem] = (),
    now: Optional[datetime] = None,
) -> datetime:
    """When to poll a feed next.

    An unmodified feed backs off according to how long ago it last changed.
    A modified feed uses the interval shared by at least two of the three
    gaps between its four newest item dates, or one hour when they disagree.
    """
    now = now or utcnow()
    if not modified:
        last_modified = normalize_datetime(last_modified)
        if last_modified is None:
            return now + DEFAULT_INTERVAL
        return now + normalize_interval((now - last_modified).total_seconds())

    dates = gather_dates(items)
    if len(dates) < 4:
        return now + DEFAULT_INTERVAL
    offsets = [normalize_interval((dates[i] - dates[i + 1]).total_seconds()) for i in range(3)]
    if offsets[0] == offsets[1] or offsets[0] == offsets[2]:
        return now + offsets[0]
    if offsets[1] == offsets[2]:
        return now + offsets[1]
    return now + DEFAULT_INTERVAL


def next_fetch_on_error(err_count: int, now: Optional[datetime] = None) -> datetime:
    """Retry soon after the first failures, then back off harder."""
    now = now or utcnow()
    if err_count < 3:
        return now + timedelta(minutes=5)
    if err_count < 15:
        return now + timedelta(hours=3)
    return now + timedelta(days=1)
