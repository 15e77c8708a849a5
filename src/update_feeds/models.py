"""Data models for the update_feeds stage."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class FeedItem:
    """One entry of a parsed feed, with its id and fingerprints hashed."""
    id: Optional[str]
    url: str
    title: str
    author: str
    content: str
    url_title_hash: str
    url_content_hash: str
    title_content_hash: str
    published: Optional[datetime] = None
    updated: Optional[datetime] = None
    enclosure_url: str = ""
    enclosure_type: str = ""
    categories: list[str] = field(default_factory=list)


@dataclass
class FetchedFeed:
    """Outcome of one conditional feed download."""
    url: str
    modified: bool
    etag: str = ""
    last_modified: Optional[datetime] = None
    title: str = ""
    site_url: str = ""
    favicon: str = ""
    items: list[FeedItem] = field(default_factory=list)


@dataclass
class ReconcileResult:
    """Items with no stored match, and changed items keyed by article id."""
    new: list[FeedItem] = field(default_factory=list)
    changed: dict[int, FeedItem] = field(default_factory=dict)

    @property
    def modified(self) -> bool:
        return bool(self.new or self.changed)
