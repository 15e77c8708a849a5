"""Tests for update_feeds.fetch_feed module."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import feedparser
import pytest
import requests

from common.config import FetchConfig
from common.hashing import sha256_hex
from update_feeds.exceptions import FeedError
from update_feeds.fetch_feed import _parse_entry, _parse_entry_date, fetch_feed, parse_feed

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Feed</title>
    <link>http://example.com/</link>
    <image><url>http://example.com/icon.png</url></image>
    <item>
      <title>First</title>
      <link>http://example.com/1</link>
      <guid isPermaLink="false">item-1</guid>
      <description>Hello</description>
      <pubDate>Sat, 01 Jun 2024 10:00:00 GMT</pubDate>
      <category>Tech</category>
      <enclosure url="http://example.com/1.mp3" type="audio/mpeg" length="1"/>
    </item>
    <item>
      <description>Untitled and unlinked</description>
    </item>
  </channel>
</rss>
"""

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <link href="http://example.org/"/>
  <id>urn:example:feed</id>
  <icon>http://example.org/favicon.ico</icon>
  <updated>2024-06-01T10:00:00Z</updated>
  <entry>
    <id>urn:example:entry:1</id>
    <title>Atom entry</title>
    <link href="http://example.org/1"/>
    <updated>2024-06-01T10:00:00Z</updated>
    <published>2024-05-31T10:00:00Z</published>
    <content type="html">Body</content>
  </entry>
</feed>
"""


def _response(status_code=200, content=RSS, headers=None, url="http://example.com/feed.xml") -> MagicMock:
    response = MagicMock(status_code=status_code, headers=headers or {}, url=url)
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.iter_content.return_value = [content]
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


class TestParseFeed:
    def test_rss(self) -> None:
        feed = parse_feed(RSS, "http://example.com/feed.xml")
        assert feed.modified is True
        assert feed.title == "Example Feed"
        assert feed.site_url == "http://example.com/"
        assert feed.favicon == "http://example.com/icon.png"
        first, second = feed.items
        assert first.id == sha256_hex("item-1")
        assert first.title == "First"
        assert first.published == datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert first.updated is None
        assert first.categories == ["Tech"]
        assert first.enclosure_url == "http://example.com/1.mp3"
        assert first.enclosure_type == "audio/mpeg"
        assert first.url_content_hash == sha256_hex("http://example.com/1", "Hello", "http://example.com/1.mp3", "audio/mpeg")

    def test_missing_link_and_title(self) -> None:
        second = parse_feed(RSS, "http://example.com/feed.xml").items[1]
        assert second.id is None
        assert second.url == "http://example.com/"
        assert second.title == "http://example.com/"
        assert second.url_title_hash == ""
        assert second.url_content_hash != ""

    def test_atom(self) -> None:
        feed = parse_feed(ATOM, "http://example.org/atom.xml")
        assert feed.favicon == "http://example.org/favicon.ico"
        (entry,) = feed.items
        assert entry.id == sha256_hex("urn:example:entry:1")
        assert entry.content == "Body"
        assert entry.updated == datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert entry.published == datetime(2024, 5, 31, 10, 0, 0, tzinfo=timezone.utc)

    def test_garbage_raises(self) -> None:
        with pytest.raises(FeedError):
            parse_feed(b"this is not a feed", "http://example.com/")


class TestParseEntry:
    def test_string_dates_fall_back_to_dateutil(self) -> None:
        result = _parse_entry_date({"published": "Mon, 01 Jan 2024 12:00:00 EST"}, "published")
        assert result == datetime(2024, 1, 1, 17, 0, 0, tzinfo=timezone.utc)

    def test_publish_date_is_not_an_update_date(self) -> None:
        entry = feedparser.FeedParserDict(
            published="Sat, 01 Jun 2024 10:00:00 GMT",
            published_parsed=(2024, 6, 1, 10, 0, 0, 5, 153, 0),
        )
        assert _parse_entry_date(entry, "updated") is None
        assert _parse_entry_date(entry, "published") == datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)

    def test_invalid_date(self) -> None:
        assert _parse_entry_date({"published": "not a date"}, "published") is None

    def test_content_preferred_over_summary(self) -> None:
        entry = {"link": "http://example.com/1", "title": "T", "summary": "short", "content": [{"value": "long"}]}
        assert _parse_entry(entry, "http://example.com/").content == "long"


class TestFetchFeed:
    @patch("update_feeds.fetch_feed.requests.get")
    def test_sends_validators(self, mock_get) -> None:
        mock_get.return_value = _response(304, headers={"ETag": '"v1"'})
        config = FetchConfig(timeout=7, user_agent="agent/1")
        result = fetch_feed("http://example.com/feed.xml", "2024-06-01 10:00:00", '"v1"', config=config)
        headers = mock_get.call_args.kwargs["headers"]
        assert headers["If-None-Match"] == '"v1"'
        assert headers["If-Modified-Since"] == "Sat, 01 Jun 2024 10:00:00 GMT"
        assert headers["User-Agent"] == "agent/1"
        assert mock_get.call_args.kwargs["timeout"] == 7
        assert result.modified is False
        assert result.last_modified == datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)

    @patch("update_feeds.fetch_feed.requests.get")
    def test_credentials(self, mock_get) -> None:
        mock_get.return_value = _response()
        fetch_feed("http://example.com/feed.xml", username="u", password="p")
        assert mock_get.call_args.kwargs["auth"] == ("u", "p")

    @patch("update_feeds.fetch_feed.requests.get")
    def test_modified(self, mock_get) -> None:
        mock_get.return_value = _response(
            headers={"ETag": '"v2"', "Last-Modified": "Sat, 01 Jun 2024 11:00:00 GMT"}
        )
        result = fetch_feed("http://example.com/feed.xml")
        assert result.modified is True
        assert result.etag == '"v2"'
        assert result.last_modified == datetime(2024, 6, 1, 11, 0, 0, tzinfo=timezone.utc)
        assert len(result.items) == 2

    @patch("update_feeds.fetch_feed.requests.get")
    def test_network_error(self, mock_get) -> None:
        mock_get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(FeedError):
            fetch_feed("http://example.com/feed.xml")

    @patch("update_feeds.fetch_feed.requests.get")
    def test_http_error(self, mock_get) -> None:
        mock_get.return_value = _response(500)
        with pytest.raises(FeedError):
            fetch_feed("http://example.com/feed.xml")
        mock_get.return_value.__exit__.assert_called_once()

    @patch("update_feeds.fetch_feed.requests.get")
    def test_size_limit(self, mock_get) -> None:
        mock_get.return_value = _response()
        with pytest.raises(FeedError):
            fetch_feed("http://example.com/feed.xml", config=FetchConfig(size_limit=10))
