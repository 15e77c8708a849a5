"""Subscription management."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError

from feed_store.connection import Storage
from feed_store.exceptions import ConflictError, NotFoundError, ValidationError
from feed_store.folders import folder_validate_id
from feed_store.query import QueryBuilder
from feed_store.validation import generate_set, is_valid_id, require_id

logger = logging.getLogger(__name__)


def subscription_add(
    storage: Storage,
    user: str,
    url: str,
    fetch_user: str = "",
    fetch_password: str = "",
    initial_update: Optional[Callable[[int], Any]] = None,
) -> int:
    """Subscribe a user to a feed URL, creating the feed when it is new.

    A newly created feed gets `initial_update(feed_id)` run on it; when that
    raises, the feed is deleted again and the error propagates.
    """
    feed_id = storage.execute(
        "SELECT id from feeds where url = ? and username = ? and password = ?",
        ["str", "str", "str"],
        [url, fetch_user, fetch_password],
    ).value()
    if feed_id is None:
        feed_id = storage.execute(
            "INSERT INTO feeds(url,username,password) values(?,?,?)",
            ["str", "str", "str"],
            [url, fetch_user, fetch_password],
        ).last_id
        logger.info("Added feed %d for %s", feed_id, url)
        if initial_update is not None:
            try:
                initial_update(feed_id)
            except Exception:
                storage.execute("DELETE from feeds where id = ?", ["int"], [feed_id])
                logger.warning("Initial update of feed %d failed; feed removed", feed_id)
                raise
    try:
        sub_id = storage.execute(
            "INSERT INTO subscriptions(owner,feed) values(?,?)", ["str", "int"], [user, feed_id]
        ).last_id
    except IntegrityError as exc:
        raise ConflictError("constraintViolation", action="subscription_add", field="url") from exc
    logger.info("Subscribed %s to feed %d as subscription %d", user, feed_id, sub_id)
    return sub_id


def subscription_list(
    storage: Storage,
    user: str,
    folder: Optional[int] = None,
    recursive: bool = True,
    subscription_id: Optional[int] = None,
) -> list[dict]:
    folder = folder_validate_id(storage, user, folder, action="subscription_list")["id"]
    q = QueryBuilder(
        "SELECT"
        " subscriptions.id as id,"
        " feed,url,favicon,source,folder,pinned,err_count,err_msg,order_type,added,"
        " feeds.updated as updated,"
        " topmost.top as top_folder,"
        " coalesce(subscriptions.title, feeds.title) as title,"
        " (SELECT count(*) from articles where articles.feed = subscriptions.feed)"
        " - (SELECT count(*) from marks where subscription = subscriptions.id and read = 1) as unread"
        " FROM subscriptions"
        " join user on user = owner"
        " join feeds on feed = feeds.id"
        " left join topmost on folder = f_id"
    )
    q.set_order_by("pinned desc", "title collate nocase")
    q.add_cte("user(user)", "SELECT ?", "str", user)
    q.add_cte(
        "topmost(f_id,top)",
        "SELECT id,id from folders join user on owner = user where parent is null"
        " union select id,top from folders join topmost on parent = f_id",
    )
    if subscription_id:
        # takes precedence over a folder
        q.add_where("subscriptions.id = ?", "int", subscription_id)
    elif folder and recursive:
        q.add_cte(
            "folder_tree(folder)",
            "SELECT ? union select id from folders join folder_tree on parent = folder",
            "int",
            folder,
        )
        q.add_where("folder in (select folder from folder_tree)")
    elif not recursive:
        q.add_where("coalesce(folder,0) = ?", "strict int", folder)
    return storage.execute(*q.render()).rows


def subscription_count(storage: Storage, user: str, folder: Optional[int] = None) -> int:
    folder = folder_validate_id(storage, user, folder, action="subscription_count")["id"]
    q = QueryBuilder("SELECT count(*) from subscriptions")
    q.add_where("owner = ?", "str", user)
    if folder:
        q.add_cte(
            "folder_tree(folder)",
            "SELECT ? union select id from folders join folder_tree on parent = folder",
            "int",
            folder,
        )
        q.add_where("folder in (select folder from folder_tree)")
    return int(storage.execute(*q.render()).value())


def subscription_remove(storage: Storage, user: str, subscription_id: Any) -> None:
    require_id(subscription_id, "subscription_remove", "feed")
    changes = storage.execute(
        "DELETE from subscriptions where owner = ? and id = ?", ["str", "int"], [user, subscription_id]
    ).changes
    if not changes:
        raise NotFoundError("subjectMissing", action="subscription_remove", field="feed", id=subscription_id)
    logger.info("Removed subscription %s for %s", subscription_id, user)


def subscription_properties_get(storage: Storage, user: str, subscription_id: Any) -> dict:
    require_id(subscription_id, "subscription_properties_get", "feed")
    rows = subscription_list(storage, user, subscription_id=int(subscription_id))
    if not rows:
        raise NotFoundError("subjectMissing", action="subscription_properties_get", field="feed", id=subscription_id)
    return rows[0]


def subscription_properties_set(storage: Storage, user: str, subscription_id: Any, data: dict[str, Any]) -> bool:
    """Update title, folder, order type or pinned state. Returns False when nothing would change."""
    action = "subscription_properties_set"
    with storage.begin():
        subscription_id = subscription_validate_id(storage, user, subscription_id, action, subject=True)["id"]
        data = dict(data)
        if "folder" in data:
            data["folder"] = folder_validate_id(storage, user, data["folder"], action=action)["id"]
        if "title" in data and data["title"] is not None:
            # None restores the feed's own title
            title = data["title"]
            if not isinstance(title, str):
                raise ValidationError("typeViolation", action=action, field="title", type="string")
            if title == "":
                raise ValidationError("missing", action=action, field="title")
            if not title.strip():
                raise ValidationError("whitespace", action=action, field="title")
        valid = {
            "title": "str",
            "folder": "int",
            "order_type": "strict int",
            "pinned": "strict bool",
        }
        set_clause, set_types, set_values = generate_set(data, valid)
        if not set_clause:
            return False
        return bool(storage.execute(
            f"UPDATE subscriptions set {set_clause}, modified = CURRENT_TIMESTAMP where owner = ? and id = ?",
            set_types + ["str", "int"],
            set_values + [user, subscription_id],
        ).changes)


def subscription_favicon(storage: Storage, user: Optional[str], subscription_id: Any) -> str:
    """URL of the favicon of a subscription's feed; empty when unknown.

    Without a user the lookup is not restricted to one owner.
    """
    if not is_valid_id(subscription_id):
        return ""
    q = QueryBuilder("SELECT favicon from feeds join subscriptions on feed = feeds.id")
    q.add_where("subscriptions.id = ?", "int", subscription_id)
    if user is not None:
        q.add_where("subscriptions.owner = ?", "str", user)
    return storage.execute(*q.render()).value() or ""

def subscription_validate_id(
    storage: Storage,
    user: str,
    subscription_id: Any,
    action: str = "subscription",
    subject: bool = False,
) -> dict:
    """Return the subscription's id and feed, checking it belongs to the user."""
    if not is_valid_id(subscription_id):
        raise ValidationError("typeViolation", action=action, field="feed", type="int > 0")
    row = storage.execute(
        "SELECT id,feed from subscriptions where id = ? and owner = ?",
        ["int", "str"],
        [subscription_id, user],
    ).first()
    if not row:
        raise NotFoundError(
            "subjectMissing" if subject else "idMissing",
            action=action,
            field="subscription",
            id=subscription_id,
        )
    return row
