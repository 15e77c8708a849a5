"""Shared fixtures: an in-memory feed store and helpers to fill it."""

from __future__ import annotations

import pytest

from common.hashing import sha256_hex
from feed_store.connection import Storage


class Seeder:
    """Insert rows directly, bypassing validation, to set up test scenarios."""

    def __init__(self, storage: Storage):
        self.storage = storage
        self._counter = 0

    def user(self, name: str) -> str:
        self.storage.execute("INSERT INTO users(id) values(?)", ["str"], [name])
        return name

    def folder(self, owner: str, name: str, parent: int | None = None) -> int:
        return self.storage.execute(
            "INSERT INTO folders(owner,name,parent) values(?,?,?)", ["str", "str", "int"], [owner, name, parent]
        ).last_id

    def feed(self, url: str, title: str = "", **fields) -> int:
        columns = ["url", "title"] + list(fields)
        values = [url, title or url] + list(fields.values())
        return self.storage.execute(
            f"INSERT INTO feeds({','.join(columns)}) values({','.join('?' for _ in columns)})",
            ["str"] * len(columns),
            values,
        ).last_id

    def subscribe(self, owner: str, feed: int, folder: int | None = None, title: str | None = None) -> int:
        return self.storage.execute(
            "INSERT INTO subscriptions(owner,feed,folder,title) values(?,?,?,?)",
            ["str", "int", "int", "str"],
            [owner, feed, folder, title],
        ).last_id

    def article(self, feed: int, title: str | None = None, edited: str | None = None, guid: str | None = None, **fields) -> int:
        self._counter += 1
        title = title or f"Article {self._counter}"
        url = fields.pop("url", f"http://example.com/{self._counter}")
        content = fields.pop("content", f"<p>Content {self._counter}</p>")
        article_id = self.storage.execute(
            "INSERT INTO articles(feed,url,title,content,edited,guid,modified,"
            "url_title_hash,url_content_hash,title_content_hash) values(?,?,?,?,?,?,?,?,?,?)",
            ["int", "str", "str", "str", "str", "str", "str", "str", "str", "str"],
            [
                feed,
                url,
                title,
                content,
                edited,
                guid,
                fields.pop("modified", "2024-01-01 00:00:00"),
                sha256_hex(url, title),
                sha256_hex(url, content),
                sha256_hex(title, content),
            ],
        ).last_id
        self.edition(article_id)
        return article_id

    def edition(self, article: int) -> int:
        return self.storage.execute("INSERT INTO editions(article) values(?)", ["int"], [article]).last_id

    def mark(self, subscription: int, article: int, read: bool = False, starred: bool = False, note: str = "",
             modified: str = "2024-01-01 00:00:00") -> None:
        self.storage.execute(
            "INSERT INTO marks(subscription,article,read,starred,note,modified) values(?,?,?,?,?,?)",
            ["int", "int", "bool", "bool", "str", "str"],
            [subscription, article, read, starred, note, modified],
        )

    def label(self, owner: str, name: str) -> int:
        return self.storage.execute(
            "INSERT INTO labels(owner,name) values(?,?)", ["str", "str"], [owner, name]
        ).last_id

    def label_member(self, label: int, article: int, subscription: int, assigned: bool = True,
                     modified: str = "2024-01-01 00:00:00") -> None:
        self.storage.execute(
            "INSERT INTO label_members(label,article,subscription,assigned,modified) values(?,?,?,?,?)",
            ["int", "int", "int", "bool", "str"],
            [label, article, subscription, assigned, modified],
        )


@pytest.fixture
def storage():
    store = Storage.from_url("sqlite://")
    yield store
    store.close()


@pytest.fixture
def seed(storage) -> Seeder:
    return Seeder(storage)


@pytest.fixture
def populated(seed) -> dict:
    """Two users; john has four subscriptions spread over a small folder tree.

    Folders (john):  tech -> software, tech -> rocketry, politics
    Subscriptions:   a (root), b (software), c (rocketry), d (politics)
    jane subscribes to feed a only.
    """
    seed.user("john")
    seed.user("jane")
    tech = seed.folder("john", "Technology")
    software = seed.folder("john", "Software", tech)
    rocketry = seed.folder("john", "Rocketry", tech)
    politics = seed.folder("john", "Politics")
    feed_a = seed.feed("http://example.com/a")
    feed_b = seed.feed("http://example.com/b")
    feed_c = seed.feed("http://example.com/c")
    feed_d = seed.feed("http://example.com/d")
    ids = {
        "folders": {"tech": tech, "software": software, "rocketry": rocketry, "politics": politics},
        "feeds": {"a": feed_a, "b": feed_b, "c": feed_c, "d": feed_d},
        "subs": {
            "a": seed.subscribe("john", feed_a),
            "b": seed.subscribe("john", feed_b, software),
            "c": seed.subscribe("john", feed_c, rocketry),
            "d": seed.subscribe("john", feed_d, politics),
            "jane_a": seed.subscribe("jane", feed_a),
        },
        "articles": {},
    }
    for key, feed in ids["feeds"].items():
        ids["articles"][key] = [
            seed.article(feed, edited=f"2024-01-0{n} 00:00:00", guid=sha256_hex(f"{key}{n}")) for n in range(1, 4)
        ]
    return ids
