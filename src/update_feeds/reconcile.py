"""Match freshly parsed feed items against each other and against stored articles."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from common.datetime import to_sql
from feed_store.connection import Storage
from feed_store.feeds import feed_match_ids, feed_match_latest
from update_feeds.models import FeedItem, ReconcileResult

logger = logging.getLogger(__name__)

HASH_FIELDS = ("url_title_hash", "url_content_hash", "title_content_hash")


def _identity(record) -> tuple:
    """(external id, url+title, url+content, title+content) of an item or a stored summary row."""
    if isinstance(record, dict):
        return (record.get("guid"),) + tuple(record[name] for name in HASH_FIELDS)
    return (record.id,) + tuple(getattr(record, name) for name in HASH_FIELDS)


def items_match(a, b) -> bool:
    """True when two records describe the same logical article.

    Ids decide whenever both sides have one. Otherwise any one hash that is
    non-empty on both sides and equal is enough; empty hashes never match.
    """
    id_a, *hashes_a = _identity(a)
    id_b, *hashes_b = _identity(b)
    if id_a and id_b:
        return id_a == id_b
    return any(x and x == y for x, y in zip(hashes_a, hashes_b))


def item_changed(item: FeedItem, article: dict) -> bool:
    """True when a matched item differs from the stored article summary."""
    if item.updated is not None and article.get("edited"):
        if to_sql(item.updated) != to_sql(article["edited"]):
            return True
    return _identity(item)[1:] != _identity(article)[1:]


def _supersedes(later: FeedItem, kept: FeedItem) -> bool:
    # feeds usually list newest first, so the earlier item wins unless the
    # later one is demonstrably newer
    if later.updated is not None and kept.updated is None:
        return True
    if later.updated is not None and kept.updated is not None:
        return later.updated > kept.updated
    if later.updated is None and kept.updated is None and later.published and kept.published:
        return later.published > kept.published
    return False


def deduplicate_items(items: Iterable[FeedItem]) -> list[FeedItem]:
    """Collapse several versions of one entry within a single fetch to the newest."""
    out: list[FeedItem] = []
    for item in items:
        for index, kept in enumerate(out):
            if items_match(item, kept):
                if _supersedes(item, kept):
                    out[index] = item
                break
        else:
            out.append(item)
    return out


def match_items(items: list[FeedItem], articles: list[dict]) -> tuple[list[FeedItem], dict[int, FeedItem]]:
    """Split items into those with no stored match and those whose stored match changed."""
    new: list[FeedItem] = []
    changed: dict[int, FeedItem] = {}
    for item in items:
        match = next((article for article in articles if items_match(item, article)), None)
        if match is None:
            new.append(item)
        elif item_changed(item, match):
            changed[match["id"]] = item
    return new, changed


class FeedReconciler:
    """Classify a fetch's items as new, changed or unchanged against stored articles."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def reconcile(self, feed_id: Optional[int], items: list[FeedItem]) -> ReconcileResult:
        items = deduplicate_items(items)
        if feed_id is None:
            return ReconcileResult(new=items)
        # the newest stored articles usually line up with the feed's items
        latest = feed_match_latest(self.storage, feed_id, len(items))
        new, changed = match_items(items, latest)
        if new and len(items) <= len(latest):
            candidates = feed_match_ids(
                self.storage,
                feed_id,
                [i.id for i in new if i.id],
                [i.url_title_hash for i in new if i.url_title_hash],
                [i.url_content_hash for i in new if i.url_content_hash],
                [i.title_content_hash for i in new if i.title_content_hash],
            )
            new, more_changed = match_items(new, candidates)
            changed.update(more_changed)
        logger.debug("Feed %d: %d items, %d new, %d changed", feed_id, len(items), len(new), len(changed))
        return ReconcileResult(new=new, changed=changed)
