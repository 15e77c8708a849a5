"""Database schema for the feed store."""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)

metadata = MetaData()

_now = text("CURRENT_TIMESTAMP")

users = Table(
    "users",
    metadata,
    Column("id", String, primary_key=True),
)

folders = Table(
    "folders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("owner", String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("parent", Integer, ForeignKey("folders.id", ondelete="CASCADE")),
    Column("name", String, nullable=False),
    Column("modified", String, nullable=False, server_default=_now),
    UniqueConstraint("owner", "name", "parent"),
)

feeds = Table(
    "feeds",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("url", String, nullable=False),
    Column("title", String),
    Column("favicon", String),
    Column("source", String),
    Column("updated", String),
    Column("modified", String),
    Column("next_fetch", String),
    Column("orphaned", String),
    Column("etag", String, nullable=False, server_default=""),
    Column("err_count", Integer, nullable=False, server_default="0"),
    Column("err_msg", Text),
    Column("username", String, nullable=False, server_default=""),
    Column("password", String, nullable=False, server_default=""),
    Column("size", Integer, nullable=False, server_default="0"),
    UniqueConstraint("url", "username", "password"),
)

subscriptions = Table(
    "subscriptions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("owner", String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("feed", Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False),
    Column("added", String, nullable=False, server_default=_now),
    Column("modified", String, nullable=False, server_default=_now),
    Column("title", String),
    Column("order_type", Integer, nullable=False, server_default="0"),
    Column("pinned", Boolean, nullable=False, server_default="0"),
    Column("folder", Integer, ForeignKey("folders.id", ondelete="CASCADE")),
    UniqueConstraint("owner", "feed"),
)

articles = Table(
    "articles",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("feed", Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False),
    Column("url", String),
    Column("title", String),
    Column("author", String),
    Column("published", String),
    Column("edited", String),
    Column("modified", String, nullable=False, server_default=_now),
    Column("content", Text),
    Column("guid", String),
    Column("url_title_hash", String, nullable=False),
    Column("url_content_hash", String, nullable=False),
    Column("title_content_hash", String, nullable=False),
)

editions = Table(
    "editions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("article", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("modified", String, nullable=False, server_default=_now),
)

enclosures = Table(
    "enclosures",
    metadata,
    Column("article", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("url", String),
    Column("type", String),
)

categories = Table(
    "categories",
    metadata,
    Column("article", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("name", String),
)

marks = Table(
    "marks",
    metadata,
    Column("article", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("subscription", Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False),
    Column("read", Boolean, nullable=False, server_default="0"),
    Column("starred", Boolean, nullable=False, server_default="0"),
    Column("note", Text, nullable=False, server_default=""),
    Column("modified", String, nullable=False, server_default=_now),
    PrimaryKeyConstraint("article", "subscription"),
)

labels = Table(
    "labels",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("owner", String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("name", String, nullable=False),
    Column("modified", String, nullable=False, server_default=_now),
    UniqueConstraint("owner", "name"),
)

label_members = Table(
    "label_members",
    metadata,
    Column("label", Integer, ForeignKey("labels.id", ondelete="CASCADE"), nullable=False),
    Column("article", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("subscription", Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False),
    Column("assigned", Boolean, nullable=False, server_default="1"),
    Column("modified", String, nullable=False, server_default=_now),
    PrimaryKeyConstraint("label", "article"),
)
