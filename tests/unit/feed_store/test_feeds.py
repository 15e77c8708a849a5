"""Tests for feed_store.feeds module."""

from datetime import datetime, timedelta, timezone

import pytest

from common.hashing import sha256_hex
from feed_store.articles import article_list
from feed_store.context import FilterContext
from feed_store.exceptions import NotFoundError, ValidationError
from feed_store.feeds import (
    feed_cleanup,
    feed_get,
    feed_list_stale,
    feed_match_ids,
    feed_match_latest,
    feed_record_error,
    feed_record_unmodified,
    feed_store_update,
)
from feed_store.subscriptions import subscription_add
from update_feeds.models import FeedItem, FetchedFeed

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _item(n: int, **fields) -> FeedItem:
    url = f"http://example.com/new/{n}"
    title = f"New {n}"
    content = f"Body {n}"
    values = dict(
        id=sha256_hex(f"new{n}"),
        url=url,
        title=title,
        author="Author",
        content=content,
        url_title_hash=sha256_hex(url, title),
        url_content_hash=sha256_hex(url, content),
        title_content_hash=sha256_hex(title, content),
        updated=datetime(2024, 5, n, tzinfo=timezone.utc),
    )
    values.update(fields)
    return FeedItem(**values)


class TestFeedGet:
    def test_missing(self, storage) -> None:
        with pytest.raises(NotFoundError):
            feed_get(storage, 5)

    def test_invalid(self, storage) -> None:
        with pytest.raises(ValidationError):
            feed_get(storage, "five")


class TestFeedListStale:
    def test_due_feeds_only(self, storage, seed) -> None:
        due = seed.feed("http://example.com/due", next_fetch="2024-06-01 11:00:00")
        seed.feed("http://example.com/later", next_fetch="2024-06-01 13:00:00")
        assert feed_list_stale(storage, NOW) == [due]

    def test_never_scheduled_feed_is_due(self, storage, seed) -> None:
        seed.user("john")
        subscription_add(storage, "john", "http://example.com/new")
        feed = storage.execute("SELECT id from feeds").value()
        assert feed_list_stale(storage, NOW) == [feed]


class TestFeedMatch:
    def test_latest_orders_by_modification(self, storage, seed, populated) -> None:
        feed = populated["feeds"]["a"]
        a = populated["articles"]["a"]
        storage.execute("UPDATE articles set modified = '2024-03-01 00:00:00' where id = ?", ["int"], [a[0]])
        rows = feed_match_latest(storage, feed, 2)
        assert [row["id"] for row in rows] == [a[0], a[2]]
        assert set(rows[0]) == {"id", "edited", "guid", "url_title_hash", "url_content_hash", "title_content_hash"}

    def test_ids_and_hashes(self, storage, populated) -> None:
        feed = populated["feeds"]["a"]
        rows = feed_match_latest(storage, feed, 3)
        by_guid = feed_match_ids(storage, feed, [rows[0]["guid"]], [], [], [])
        by_hash = feed_match_ids(storage, feed, [], [], [], [rows[1]["title_content_hash"]])
        assert [row["id"] for row in by_guid] == [rows[0]["id"]]
        assert [row["id"] for row in by_hash] == [rows[1]["id"]]
        assert feed_match_ids(storage, populated["feeds"]["b"], [rows[0]["guid"]], [], [], []) == []


class TestFeedStoreUpdate:
    def test_inserts_new_and_rewrites_changed(self, storage, seed, populated) -> None:
        feed = populated["feeds"]["a"]
        sub = populated["subs"]["a"]
        existing = populated["articles"]["a"][0]
        seed.mark(sub, existing, read=True, starred=True)
        storage.execute("INSERT INTO categories(article,name) values(?,?)", ["int", "str"], [existing, "Old"])
        fetched = FetchedFeed(url="http://example.com/a", modified=True, etag='"v2"', title="Feed A",
                              site_url="http://example.com/", items=[_item(1), _item(2)])
        new = _item(1, enclosure_url="http://example.com/a.mp3", enclosure_type="audio/mpeg", categories=["Music"])
        changed = _item(2, categories=["New"])

        feed_store_update(storage, feed, fetched, [new], {existing: changed}, NOW, NOW - timedelta(hours=1))

        rows = {row["id"]: row for row in article_list(storage, "john", FilterContext(subscription=sub))}
        assert len(rows) == 4
        assert rows[existing]["title"] == "New 2"
        assert rows[existing]["unread"] == 1
        assert rows[existing]["starred"] == 1
        inserted = max(rows)
        assert rows[inserted]["media_url"] == "http://example.com/a.mp3"
        categories = storage.execute("SELECT article, name from categories order by name").rows
        assert categories == [{"article": inserted, "name": "Music"}, {"article": existing, "name": "New"}]
        assert storage.execute("SELECT count(*) from editions where article = ?", ["int"], [existing]).value() == 2
        row = storage.execute("SELECT title, etag, size, next_fetch, modified, err_count from feeds where id = ?",
                              ["int"], [feed]).first()
        assert row == {
            "title": "Feed A", "etag": '"v2"', "size": 2, "next_fetch": "2024-06-01 12:00:00",
            "modified": "2024-06-01 11:00:00", "err_count": 0,
        }

    def test_favicon_kept_when_feed_has_none(self, storage, seed) -> None:
        feed = seed.feed("http://example.com/feed.xml")
        with_icon = FetchedFeed(url="http://example.com/feed.xml", modified=True, favicon="http://example.com/icon.png")
        feed_store_update(storage, feed, with_icon, [], {}, NOW, None)
        without_icon = FetchedFeed(url="http://example.com/feed.xml", modified=True)
        feed_store_update(storage, feed, without_icon, [], {}, NOW, None)
        favicon = storage.execute("SELECT favicon from feeds where id = ?", ["int"], [feed]).value()
        assert favicon == "http://example.com/icon.png"


class TestErrorBookkeeping:
    def test_error_then_success(self, storage, seed) -> None:
        feed = seed.feed("http://example.com/f")
        feed_record_error(storage, feed, "boom", NOW)
        feed_record_error(storage, feed, "boom again", NOW)
        row = feed_get(storage, feed)
        assert row["err_count"] == 2
        feed_record_unmodified(storage, feed, NOW)
        assert feed_get(storage, feed)["err_count"] == 0


class TestFeedCleanup:
    def test_orphans_are_flagged_then_deleted(self, storage, seed, populated) -> None:
        orphan = seed.feed("http://example.com/orphan")
        assert feed_cleanup(storage, timedelta(hours=24)) == 0
        flagged = storage.execute("SELECT orphaned from feeds where id = ?", ["int"], [orphan]).value()
        assert flagged is not None
        assert storage.execute("SELECT count(*) from feeds where orphaned is not null").value() == 1
        assert feed_cleanup(storage, timedelta(hours=24), now=datetime.now(timezone.utc) + timedelta(days=2)) == 1

    def test_resubscribed_feed_is_unflagged(self, storage, seed, populated) -> None:
        orphan = seed.feed("http://example.com/orphan")
        feed_cleanup(storage, timedelta(hours=24))
        seed.subscribe("jane", orphan)
        feed_cleanup(storage, timedelta(hours=24))
        assert storage.execute("SELECT orphaned from feeds where id = ?", ["int"], [orphan]).value() is None
