"""Feed rows and the persistence side of feed updates."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from common.datetime import utcnow
from feed_store.connection import Storage
from feed_store.exceptions import NotFoundError
from feed_store.validation import generate_in, require_id

logger = logging.getLogger(__name__)

_SUMMARY_COLUMNS = "id, edited, guid, url_title_hash, url_content_hash, title_content_hash"

_ARTICLE_TYPES = ["str", "str", "str", "datetime", "datetime", "str", "str", "str", "str", "str"]


def feed_get(storage: Storage, feed_id: Any, action: str = "feed_update") -> dict:
    """Fetch state of a feed: url, credentials, caching validators and error count."""
    require_id(feed_id, action, "feed")
    row = storage.execute(
        "SELECT id, url, username, password, modified, etag, err_count FROM feeds where id = ?",
        ["int"],
        [feed_id],
    ).first()
    if not row:
        raise NotFoundError("subjectMissing", action=action, field="feed", id=feed_id)
    return row


def feed_list_stale(storage: Storage, now: Optional[datetime] = None) -> list[int]:
    """Ids of feeds whose next fetch time has passed; a feed never scheduled is due."""
    rows = storage.execute(
        "SELECT id from feeds where coalesce(next_fetch, '') <= ? order by id", ["datetime"], [now or utcnow()]
    ).rows
    return [row["id"] for row in rows]


def feed_match_latest(storage: Storage, feed_id: int, count: int) -> list[dict]:
    """Summaries of the `count` most recently modified articles of a feed."""
    return storage.execute(
        f"SELECT {_SUMMARY_COLUMNS} FROM articles WHERE feed = ? ORDER BY modified desc, id desc limit ?",
        ["int", "int"],
        [feed_id, count],
    ).rows


def feed_match_ids(
    storage: Storage,
    feed_id: int,
    ids: list[str],
    url_title_hashes: list[str],
    url_content_hashes: list[str],
    title_content_hashes: list[str],
) -> list[dict]:
    """Summaries of a feed's articles matching any of the given ids or hashes."""
    c_id, t_id = generate_in(ids, "str")
    c_ut, t_ut = generate_in(url_title_hashes, "str")
    c_uc, t_uc = generate_in(url_content_hashes, "str")
    c_tc, t_tc = generate_in(title_content_hashes, "str")
    return storage.execute(
        f"SELECT {_SUMMARY_COLUMNS} FROM articles WHERE feed = ? and ("
        f"guid in ({c_id}) or url_title_hash in ({c_ut})"
        f" or url_content_hash in ({c_uc}) or title_content_hash in ({c_tc}))",
        ["int"] + t_id + t_ut + t_uc + t_tc,
        [feed_id] + ids + url_title_hashes + url_content_hashes + title_content_hashes,
    ).rows


def feed_record_unmodified(storage: Storage, feed_id: int, next_fetch: datetime) -> None:
    """A successful fetch with nothing new still clears the error count."""
    storage.execute(
        "UPDATE feeds SET updated = CURRENT_TIMESTAMP, next_fetch = ?, err_count = 0, err_msg = ''"
        " WHERE id = ?",
        ["datetime", "int"],
        [next_fetch, feed_id],
    )


def feed_record_error(storage: Storage, feed_id: int, message: str, next_fetch: datetime) -> None:
    storage.execute(
        "UPDATE feeds SET updated = CURRENT_TIMESTAMP, next_fetch = ?, err_count = err_count + 1, err_msg = ?"
        " WHERE id = ?",
        ["datetime", "str", "int"],
        [next_fetch, message, feed_id],
    )


def _article_values(item) -> list:
    return [
        item.url,
        item.title,
        item.author,
        item.published,
        item.updated,
        item.id,
        item.content,
        item.url_title_hash,
        item.url_content_hash,
        item.title_content_hash,
    ]


def _insert_attachments(storage: Storage, article_id: int, item) -> None:
    if item.enclosure_url:
        storage.execute(
            "INSERT INTO enclosures(article,url,type) values(?,?,?)",
            ["int", "str", "str"],
            [article_id, item.enclosure_url, item.enclosure_type],
        )
    for name in item.categories:
        storage.execute("INSERT INTO categories(article,name) values(?,?)", ["int", "str"], [article_id, name])
    storage.execute("INSERT INTO editions(article) values(?)", ["int"], [article_id])


def feed_store_update(
    storage: Storage,
    feed_id: int,
    feed,
    new_items: list,
    changed_items: dict[int, Any],
    next_fetch: datetime,
    last_modified: Optional[datetime],
) -> None:
    """Persist one reconciled fetch in a single transaction.

    New items become articles with a first edition. Changed items overwrite
    their article, get a new edition, lose their read marks and have their
    enclosure and category rows replaced.
    """
    with storage.begin():
        for item in new_items:
            article_id = storage.execute(
                "INSERT INTO articles(url,title,author,published,edited,guid,content,"
                "url_title_hash,url_content_hash,title_content_hash,feed) values(?,?,?,?,?,?,?,?,?,?,?)",
                _ARTICLE_TYPES + ["int"],
                _article_values(item) + [feed_id],
            ).last_id
            _insert_attachments(storage, article_id, item)
        for article_id, item in changed_items.items():
            storage.execute(
                "UPDATE articles SET url = ?, title = ?, author = ?, published = ?, edited = ?,"
                " modified = CURRENT_TIMESTAMP, guid = ?, content = ?,"
                " url_title_hash = ?, url_content_hash = ?, title_content_hash = ? WHERE id = ?",
                _ARTICLE_TYPES + ["int"],
                _article_values(item) + [article_id],
            )
            storage.execute("DELETE FROM enclosures WHERE article = ?", ["int"], [article_id])
            storage.execute("DELETE FROM categories WHERE article = ?", ["int"], [article_id])
            _insert_attachments(storage, article_id, item)
            storage.execute(
                "UPDATE marks SET read = 0, modified = CURRENT_TIMESTAMP WHERE article = ? and read = 1",
                ["int"],
                [article_id],
            )
        storage.execute(
            "UPDATE feeds SET url = ?, title = ?, favicon = coalesce(nullif(?, ''), favicon), source = ?, updated = CURRENT_TIMESTAMP,"
            " modified = ?, etag = ?, err_count = 0, err_msg = '', next_fetch = ?, size = ? WHERE id = ?",
            ["str", "str", "str", "str", "datetime", "str", "datetime", "int", "int"],
            [
                feed.url,
                feed.title,
                feed.favicon,
                feed.site_url,
                last_modified,
                feed.etag,
                next_fetch,
                len(feed.items),
                feed_id,
            ],
        )
    logger.info(
        "Feed %d: stored %d new and %d changed articles", feed_id, len(new_items), len(changed_items)
    )


def feed_cleanup(storage: Storage, retention: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
    """Flag feeds nobody subscribes to and delete those orphaned longer than `retention`.

    Feeds that regained a subscriber lose their orphan flag. Without a
    retention period orphans are deleted immediately. Returns the number of
    feeds deleted.
    """
    limit = now or utcnow()
    if retention:
        limit = limit - retention
    with storage.begin():
        storage.execute(
            "UPDATE feeds set orphaned = null where exists(SELECT id from subscriptions where feed = feeds.id)"
        )
        storage.execute(
            "UPDATE feeds set orphaned = CURRENT_TIMESTAMP where orphaned is null"
            " and not exists(SELECT id from subscriptions where feed = feeds.id)"
        )
        deleted = storage.execute("DELETE from feeds where orphaned <= ?", ["datetime"], [limit]).changes
    if deleted:
        logger.info("Deleted %d orphaned feeds", deleted)
    return deleted
