"""Feed downloading and parsing."""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import feedparser
import requests
from dateutil.parser import parse as parse_date

from common.config import FetchConfig
from common.datetime import normalize_datetime, to_http
from common.hashing import compute_item_hashes, generate_item_id
from update_feeds.exceptions import FeedError
from update_feeds.models import FeedItem, FetchedFeed

logger = logging.getLogger(__name__)

# Timezone abbreviations for date parsing
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": timezone.utc,
    "UTC": timezone.utc,
    "BST": timezone(timedelta(hours=1)),
}


def fetch_feed(
    url: str,
    last_modified=None,
    etag: str = "",
    username: str = "",
    password: str = "",
    config: Optional[FetchConfig] = None,
) -> FetchedFeed:
    """Conditionally download a feed and parse it.

    Sends the stored validators so an unchanged feed costs a 304. Raises
    FeedError on network, HTTP, size and parse failures.
    """
    config = config or FetchConfig()
    headers = {"User-Agent": config.user_agent}
    if etag:
        headers["If-None-Match"] = etag
    if last_modified:
        headers["If-Modified-Since"] = to_http(last_modified)

    try:
        with requests.get(
            url,
            timeout=config.timeout,
            headers=headers,
            auth=(username, password) if username else None,
            stream=True,
        ) as response:
            if response.status_code == 304:
                logger.debug("Feed %s not modified", url)
                return FetchedFeed(
                    url=url,
                    modified=False,
                    etag=response.headers.get("ETag", etag),
                    last_modified=(
                        _parse_http_date(response.headers.get("Last-Modified")) or normalize_datetime(last_modified)
                    ),
                )
            response.raise_for_status()
            content = _read_limited(response, config.size_limit)
    except requests.RequestException as e:
        raise FeedError(url, str(e)) from e

    feed = parse_feed(content, response.url or url)
    feed.etag = response.headers.get("ETag", "")
    feed.last_modified = _parse_http_date(response.headers.get("Last-Modified"))
    return feed


def parse_feed(content: bytes, url: str) -> FetchedFeed:
    """Parse a feed document into items with ids and fingerprints computed."""
    parsed = feedparser.parse(content)
    if parsed.get("bozo") and not parsed.get("version"):
        raise FeedError(url, f"not a recognizable feed ({parsed.get('bozo_exception')})")

    site_url = parsed.feed.get("link", "") or url
    image = parsed.feed.get("image") or {}
    items = []
    for entry in parsed.entries:
        items.append(_parse_entry(entry, site_url))

    return FetchedFeed(
        url=url,
        modified=True,
        title=parsed.feed.get("title", "").strip(),
        site_url=site_url,
        favicon=parsed.feed.get("icon", "") or image.get("href", ""),
        items=items,
    )


def _read_limited(response, size_limit: int) -> bytes:
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=65536):
        size += len(chunk)
        if size_limit and size > size_limit:
            response.close()
            raise FeedError(response.url, f"feed exceeds {size_limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def _parse_entry(entry, site_url: str) -> FeedItem:
    """Build a FeedItem; a missing link falls back to the site URL and a missing title to the link."""
    url = entry.get("link", "") or site_url
    title = entry.get("title", "").strip() or url
    content = _entry_content(entry)

    enclosure_url = ""
    enclosure_type = ""
    enclosures = entry.get("enclosures") or []
    if enclosures:
        enclosure_url = enclosures[0].get("href", "")
        enclosure_type = enclosures[0].get("type", "")

    url_title_hash, url_content_hash, title_content_hash = compute_item_hashes(
        url, title, content + enclosure_url + enclosure_type, site_url
    )

    return FeedItem(
        id=generate_item_id(_entry_identifier(entry)),
        url=url,
        title=title,
        author=entry.get("author", ""),
        content=content,
        url_title_hash=url_title_hash,
        url_content_hash=url_content_hash,
        title_content_hash=title_content_hash,
        published=_parse_entry_date(entry, "published"),
        updated=_parse_entry_date(entry, "updated"),
        enclosure_url=enclosure_url,
        enclosure_type=enclosure_type,
        categories=[tag.get("term") for tag in entry.get("tags", []) if tag.get("term")],
    )


def _entry_identifier(entry) -> str:
    # feedparser exposes both an Atom id and an RSS guid as `id`
    return entry.get("id") or entry.get("guid") or entry.get("dc_identifier") or ""


def _entry_content(entry) -> str:
    contents = entry.get("content") or []
    if contents:
        return contents[0].get("value", "")
    return entry.get("summary", "")


def _parse_entry_date(entry, name: str) -> datetime | None:
    """Prefer feedparser's normalized struct_time, falling back to parsing the raw string."""
    # plain dict lookups: FeedParserDict answers a missing "updated" with "published"
    parsed = dict.get(entry, f"{name}_parsed")
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    raw = dict.get(entry, name)
    if not raw:
        return None
    try:
        dt = parse_date(raw, tzinfos=TZINFOS)
    except (ValueError, OverflowError):
        logger.debug("Unparseable %s date: %s", name, raw)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return normalize_datetime(parse_date(value, tzinfos=TZINFOS))
    except (ValueError, OverflowError):
        return None
