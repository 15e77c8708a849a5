"""Fetch, reconcile, schedule and persist feed updates."""

import logging
from typing import Callable, Optional

from common.config import FetchConfig
from common.datetime import normalize_datetime
from feed_store.connection import Storage
from feed_store.feeds import (
    feed_get,
    feed_list_stale,
    feed_record_error,
    feed_record_unmodified,
    feed_store_update,
)
from feed_store.subscriptions import subscription_add
from update_feeds.exceptions import FeedError
from update_feeds.fetch_feed import fetch_feed
from update_feeds.models import FetchedFeed
from update_feeds.reconcile import FeedReconciler
from update_feeds.schedule import compute_last_modified, next_fetch, next_fetch_on_error

logger = logging.getLogger(__name__)

Fetcher = Callable[..., FetchedFeed]


def update_feed(
    storage: Storage,
    feed_id: int,
    raise_errors: bool = False,
    fetcher: Fetcher = fetch_feed,
    fetch_config: Optional[FetchConfig] = None,
) -> bool:
    """Update one feed; returns True when new or changed articles were stored.

    Fetch failures are recorded against the feed and rescheduled. They are
    only raised when `raise_errors` is set.
    """
    feed = feed_get(storage, feed_id)
    try:
        fetched = fetcher(
            feed["url"],
            last_modified=feed["modified"],
            etag=feed["etag"],
            username=feed["username"],
            password=feed["password"],
            config=fetch_config,
        )
    except FeedError as e:
        feed_record_error(storage, feed["id"], str(e), next_fetch_on_error(feed["err_count"]))
        logger.warning("Failed to update feed %d: %s", feed["id"], e)
        if raise_errors:
            raise
        return False

    if not fetched.modified:
        last_modified = fetched.last_modified or normalize_datetime(feed["modified"])
        feed_record_unmodified(storage, feed["id"], next_fetch(False, last_modified))
        logger.info("Feed %d not modified", feed["id"])
        return False

    result = FeedReconciler(storage).reconcile(feed["id"], fetched.items)
    last_modified = fetched.last_modified or compute_last_modified(fetched.items)
    # a fetch without new or changed articles counts as unmodified for scheduling
    scheduled = next_fetch(result.modified, last_modified, fetched.items)
    feed_store_update(storage, feed["id"], fetched, result.new, result.changed, scheduled, last_modified)
    return result.modified


def update_stale_feeds(
    storage: Storage,
    raise_errors: bool = False,
    fetcher: Fetcher = fetch_feed,
    fetch_config: Optional[FetchConfig] = None,
) -> int:
    """Update every feed that is due; returns how many were modified."""
    feed_ids = feed_list_stale(storage)
    logger.info("Updating %d stale feeds", len(feed_ids))
    modified = 0
    for feed_id in feed_ids:
        if update_feed(storage, feed_id, raise_errors, fetcher, fetch_config):
            modified += 1
    logger.info("Updated %d feeds, %d modified", len(feed_ids), modified)
    return modified


def subscribe(
    storage: Storage,
    user: str,
    url: str,
    fetch_user: str = "",
    fetch_password: str = "",
    fetcher: Fetcher = fetch_feed,
    fetch_config: Optional[FetchConfig] = None,
) -> int:
    """Subscribe a user to a feed, fetching a newly added feed right away.

    A new feed that cannot be fetched is removed again and the FeedError is raised.
    """
    return subscription_add(
        storage,
        user,
        url,
        fetch_user,
        fetch_password,
        initial_update=lambda feed_id: update_feed(
            storage, feed_id, raise_errors=True, fetcher=fetcher, fetch_config=fetch_config
        ),
    )
