"""Article selection, counting and marking driven by a FilterContext."""

from __future__ import annotations

import logging
from enum import IntEnum
from itertools import chain
from typing import Any, Optional

from feed_store.connection import Storage
from feed_store.context import LIMIT_ARTICLES, FilterContext
from feed_store.exceptions import ConflictError, NotFoundError, ValidationError
from feed_store.folders import folder_validate_id
from feed_store.labels import label_validate_id
from feed_store.query import QueryBuilder
from feed_store.subscriptions import subscription_validate_id
from feed_store.validation import clean_id_list, generate_in, is_valid_id, require_id

logger = logging.getLogger(__name__)


class ListVerbosity(IntEnum):
    MINIMAL = 0  # only what context matching needs
    CONSERVATIVE = 1  # plus metadata that is never large text
    TYPICAL = 2  # plus content and enclosures
    FULL = 3  # everything


# Columns each tier adds on top of the one below it
_TIER_COLUMNS: list[list[str]] = [
    [
        "edited as edited_date",
    ],
    [
        "articles.url as url",
        "articles.title as title",
        "(select coalesce(subscriptions.title, feeds.title) from subscriptions"
        " join feeds on feeds.id = subscriptions.feed"
        " where subscriptions.id = subscribed_feeds.sub) as subscription_title",
        "author",
        "guid",
        "published as published_date",
        "url_title_hash||':'||url_content_hash||':'||title_content_hash as fingerprint",
    ],
    [
        "content",
        "enclosures.url as media_url",
        "enclosures.type as media_type",
    ],
    [
        "coalesce((select note from marks where article = articles.id"
        " and subscription = subscribed_feeds.sub),'') as note",
    ],
]


def columns_for(verbosity: ListVerbosity) -> list[str]:
    """Concatenate the column deltas of every tier up to and including `verbosity`."""
    return list(chain.from_iterable(_TIER_COLUMNS[:int(verbosity) + 1]))


_SINGLE_ID_FIELDS = (
    "subscription",
    "label",
    "article",
    "edition",
    "oldest_article",
    "latest_article",
    "oldest_edition",
    "latest_edition",
)


class ArticleQueryAssembler:
    """Translate a FilterContext into a query over the articles a user can see.

    The query always defines `subscribed_feeds(id, sub)`, the feeds and
    subscriptions in scope, and `requested_articles(id, edition)`, the
    explicitly requested articles (empty when none were requested). Read,
    starred and note state come from subqueries against `marks`.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def build(
        self,
        user: str,
        context: FilterContext,
        extra_columns: list[str] | tuple[str, ...] = (),
        action: str = "article_query",
    ) -> QueryBuilder:
        id_sets = self._validate(context, action)
        extra = "".join(f"{column}, " for column in extra_columns)
        q = QueryBuilder(
            "SELECT "
            f"{extra}"
            "articles.id as id, "
            "articles.feed as feed, "
            "articles.modified as modified_date, "
            "max("
            "articles.modified, "
            "coalesce((select max(modified) from marks where article = articles.id"
            " and subscription in (select sub from subscribed_feeds)),''), "
            "coalesce((select max(modified) from label_members where article = articles.id"
            " and subscription in (select sub from subscribed_feeds)),'')"
            ") as marked_date, "
            "NOT (select count(*) from marks where article = articles.id and read = 1"
            " and subscription in (select sub from subscribed_feeds)) as unread, "
            "(select count(*) from marks where article = articles.id and starred = 1"
            " and subscription in (select sub from subscribed_feeds)) as starred, "
            "(select max(id) from editions where article = articles.id) as edition, "
            "subscribed_feeds.sub as subscription "
            "FROM articles"
        )
        q.set_limit(context.limit, context.offset)
        q.add_cte("user(user)", "SELECT ?", "str", user)
        self._scope_subscriptions(q, user, context, action)
        self._requested_articles(q, context, id_sets)
        self._label_filters(q, user, context, action)
        self._range_filters(q, context)
        return q

    def _validate(self, context: FilterContext, action: str) -> dict[str, list[int]]:
        for name in _SINGLE_ID_FIELDS:
            value = getattr(context, name)
            if value is not None and not is_valid_id(value):
                raise ValidationError("typeViolation", action=action, field=name, type="int > 0")
        for name in ("folder", "folder_shallow"):
            value = getattr(context, name)
            if value is not None and not is_valid_id(value, allow_zero=True):
                raise ValidationError("typeViolation", action=action, field=name, type="int >= 0")
        id_sets = {}
        name = context.id_set_field()
        if name is not None:
            ids = clean_id_list(getattr(context, name))
            if not ids:
                raise ValidationError("tooShort", action=action, field=name, min=1)
            if len(ids) > LIMIT_ARTICLES:
                raise ConflictError("tooLong", action=action, field=name, max=LIMIT_ARTICLES)
            id_sets[name] = ids
        return id_sets

    def _scope_subscriptions(self, q: QueryBuilder, user: str, context: FilterContext, action: str) -> None:
        join = "join subscribed_feeds on articles.feed = subscribed_feeds.id"
        if context.subscription is not None:
            feed = subscription_validate_id(self.storage, user, context.subscription, action)["feed"]
            q.add_cte("subscribed_feeds(id,sub)", "SELECT ?,?", ["int", "int"], [feed, context.subscription], join)
        elif context.folder:
            folder_validate_id(self.storage, user, context.folder, action=action)
            q.add_cte(
                "folder_tree(folder)",
                "SELECT ? union select id from folders join folder_tree on parent = folder",
                "int",
                context.folder,
            )
            q.add_cte(
                "subscribed_feeds(id,sub)",
                "SELECT feed,id from subscriptions join user on user = owner"
                " join folder_tree on subscriptions.folder = folder_tree.folder",
                join=join,
            )
        elif context.folder_shallow is not None:
            folder_validate_id(self.storage, user, context.folder_shallow, action=action)
            q.add_cte(
                "subscribed_feeds(id,sub)",
                "SELECT feed,id from subscriptions join user on user = owner and coalesce(folder,0) = ?",
                "strict int",
                context.folder_shallow,
                join,
            )
        else:
            # no scope, or the root folder recursively: every subscription
            q.add_cte(
                "subscribed_feeds(id,sub)",
                "SELECT feed,id from subscriptions join user on user = owner",
                join=join,
            )

    def _requested_articles(self, q: QueryBuilder, context: FilterContext, id_sets: dict[str, list[int]]) -> None:
        if context.edition is not None:
            q.add_where("articles.id = (select article from editions where id = ?)", "int", context.edition)
        elif context.article is not None:
            q.add_where("articles.id = ?", "int", context.article)

        if "editions" in id_sets:
            ids = id_sets["editions"]
            placeholders, types = generate_in(ids, "int")
            q.add_cte(
                "requested_articles(id,edition)",
                f"SELECT article,id as edition from editions where id in ({placeholders})",
                types,
                ids,
            )
            q.add_where("articles.id in (select id from requested_articles)")
        elif "articles" in id_sets:
            ids = id_sets["articles"]
            placeholders, types = generate_in(ids, "int")
            q.add_cte(
                "requested_articles(id,edition)",
                "SELECT id,(select max(id) from editions where article = articles.id) as edition"
                f" from articles where articles.id in ({placeholders})",
                types,
                ids,
            )
            q.add_where("articles.id in (select id from requested_articles)")
        else:
            # keeps references to requested_articles valid
            q.add_cte("requested_articles(id,edition)", "SELECT 'empty','table' where 1 = 0")

    def _label_filters(self, q: QueryBuilder, user: str, context: FilterContext, action: str) -> None:
        if context.labelled is not None:
            q.add_where(
                ("" if context.labelled else "not ")
                + "exists(select article from label_members where assigned = 1 and article = articles.id"
                " and subscription in (select sub from subscribed_feeds))"
            )
        elif context.label is not None or context.label_name is not None:
            if context.label is not None:
                label_id = label_validate_id(self.storage, user, context.label, by_name=False, action=action)["id"]
            else:
                label_id = label_validate_id(self.storage, user, context.label_name, by_name=True, action=action)["id"]
            q.add_where(
                "exists(select article from label_members where assigned = 1 and article = articles.id and label = ?)",
                "int",
                label_id,
            )

    def _range_filters(self, q: QueryBuilder, context: FilterContext) -> None:
        if context.oldest_article is not None:
            q.add_where("articles.id >= ?", "int", context.oldest_article)
        if context.latest_article is not None:
            q.add_where("articles.id <= ?", "int", context.latest_article)
        if context.oldest_edition is not None:
            q.add_where("edition >= ?", "int", context.oldest_edition)
        if context.latest_edition is not None:
            q.add_where("edition <= ?", "int", context.latest_edition)
        # modified_date only moves when the feed changes the article; marked_date
        # also moves when the user changes its read, starred, note or label state
        if context.modified_since is not None:
            q.add_where("modified_date >= ?", "datetime", context.modified_since)
        if context.not_modified_since is not None:
            q.add_where("modified_date <= ?", "datetime", context.not_modified_since)
        if context.marked_since is not None:
            q.add_where("marked_date >= ?", "datetime", context.marked_since)
        if context.not_marked_since is not None:
            q.add_where("marked_date <= ?", "datetime", context.not_marked_since)
        if context.unread is not None:
            q.add_where("unread = ?", "bool", context.unread)
        if context.starred is not None:
            q.add_where("starred = ?", "bool", context.starred)
        if context.annotated is not None:
            q.add_where(
                ("" if context.annotated else "not ")
                + "exists(select modified from marks where article = articles.id and note <> ''"
                " and subscription in (select sub from subscribed_feeds))"
            )


def article_list(
    storage: Storage,
    user: str,
    context: Optional[FilterContext] = None,
    verbosity: ListVerbosity = ListVerbosity.FULL,
) -> list[dict]:
    """List the articles matching a context, with the columns of a verbosity tier."""
    context = context or FilterContext()
    verbosity = ListVerbosity(verbosity)
    chunks = list(context.chunks())
    if not chunks:
        return _list_once(storage, user, context, verbosity)
    rows: list[dict] = []
    with storage.begin():
        for chunk in chunks:
            rows.extend(_list_once(storage, user, chunk, verbosity))
    return rows


def _list_once(storage: Storage, user: str, context: FilterContext, verbosity: ListVerbosity) -> list[dict]:
    q = ArticleQueryAssembler(storage).build(user, context, columns_for(verbosity), action="article_list")
    direction = " desc" if context.reverse else ""
    q.set_order_by(f"edited_date{direction}", f"edition{direction}")
    q.add_join("left join enclosures on enclosures.article = articles.id")
    return storage.execute(*q.render()).rows


def article_count(storage: Storage, user: str, context: Optional[FilterContext] = None) -> int:
    context = context or FilterContext()
    chunks = list(context.chunks())
    if not chunks:
        return _count_once(storage, user, context)
    total = 0
    with storage.begin():
        for chunk in chunks:
            total += _count_once(storage, user, chunk)
    return total


def _count_once(storage: Storage, user: str, context: FilterContext) -> int:
    q = ArticleQueryAssembler(storage).build(user, context, action="article_count")
    q.promote_body_to_cte("selected_articles")
    q.set_body("SELECT count(*) from selected_articles")
    return int(storage.execute(*q.render()).value())


_MARK_UPDATE = (
    "UPDATE marks set"
    " read = case when (select honour_read from target_articles where target_articles.id = article) = 1"
    " then (select read from target_values) else read end,"
    " starred = coalesce((select starred from target_values),starred),"
    " note = coalesce((select note from target_values),note),"
    " modified = CURRENT_TIMESTAMP"
    " WHERE subscription in (select sub from subscribed_feeds)"
    " and article in (select id from target_articles where to_insert = 0"
    " and (honour_read = 1 or honour_star = 1 or (select note from target_values) is not null))"
)

_MARK_INSERT = (
    "INSERT INTO marks(subscription,article,read,starred,note)"
    " select subscription, id,"
    " coalesce((select read from target_values) * honour_read,0),"
    " coalesce((select starred from target_values),0),"
    " coalesce((select note from target_values),'')"
    " from target_articles where to_insert = 1"
    " and (honour_read = 1 or honour_star = 1 or coalesce((select note from target_values),'') <> '')"
)

_MARK_COLUMNS = [
    "(not exists(select article from marks where article = articles.id"
    " and subscription in (select sub from subscribed_feeds))) as to_insert",
    # a read flag is only applied to the article's current edition
    "((select read from target_values) is not null"
    " and (select read from target_values) <> coalesce((select read from marks where article = articles.id"
    " and subscription in (select sub from subscribed_feeds)),0)"
    " and (not exists(select * from requested_articles)"
    " or (select max(id) from editions where article = articles.id) in (select edition from requested_articles))"
    ") as honour_read",
    "((select starred from target_values) is not null"
    " and (select starred from target_values) <> coalesce((select starred from marks where article = articles.id"
    " and subscription in (select sub from subscribed_feeds)),0)) as honour_star",
]


def article_mark(
    storage: Storage,
    user: str,
    data: dict[str, Any],
    context: Optional[FilterContext] = None,
) -> int:
    """Set read, starred and/or note state on matching articles; returns the number of marks changed."""
    context = context or FilterContext()
    chunks = list(context.chunks())
    if not chunks:
        return _mark_once(storage, user, data, context)
    total = 0
    with storage.begin():
        for chunk in chunks:
            total += _mark_once(storage, user, data, chunk)
    return total


def _mark_once(storage: Storage, user: str, data: dict[str, Any], context: FilterContext) -> int:
    values = [data.get("read"), data.get("starred"), data.get("note")]
    changed = 0
    with storage.begin():
        if context.edition is not None:
            edition = article_validate_edition(storage, user, context.edition)
            if not edition["current"]:
                # an outdated edition must not change the read flag
                values[0] = None
        elif context.article is not None:
            article_validate_id(storage, user, context.article)
        for statement in (_MARK_UPDATE, _MARK_INSERT):
            q = ArticleQueryAssembler(storage).build(user, context, _MARK_COLUMNS, action="article_mark")
            q.add_cte("target_values(read,starred,note)", "SELECT ?,?,?", ["bool", "bool", "str"], values)
            q.promote_body_to_cte("target_articles")
            q.set_body(statement)
            changed += storage.execute(*q.render()).changes
    logger.debug("Marked %d articles for %s", changed, user)
    return changed


def edition_latest(storage: Storage, user: str, context: Optional[FilterContext] = None) -> int:
    """Highest edition id visible to the user, optionally within one subscription."""
    context = context or FilterContext()
    q = QueryBuilder(
        "SELECT max(editions.id) from editions"
        " left join articles on article = articles.id"
        " left join feeds on articles.feed = feeds.id"
    )
    if context.subscription is not None:
        feed = subscription_validate_id(storage, user, context.subscription, "edition_latest")["feed"]
        q.add_where("feeds.id = ?", "int", feed)
    else:
        q.add_cte("user(user)", "SELECT ?", "str", user)
        q.add_cte(
            "user_feeds(feed)",
            "SELECT feed from subscriptions join user on user = owner",
            join="join user_feeds on articles.feed = user_feeds.feed",
        )
    return int(storage.execute(*q.render()).value() or 0)


def article_starred(storage: Storage, user: str) -> dict:
    """Totals of the user's starred articles, split by read state."""
    return storage.execute(
        "SELECT count(*) as total, coalesce(sum(not read),0) as unread, coalesce(sum(read),0) as read"
        " FROM (select read from marks where starred = 1"
        " and subscription in (select id from subscriptions where owner = ?))",
        ["str"],
        [user],
    ).first()


def article_labels_get(storage: Storage, user: str, article_id: Any, by_name: bool = False) -> list:
    article_id = article_validate_id(storage, user, article_id, "article_labels_get")["article"]
    rows = storage.execute(
        "SELECT id,name from labels where owner = ?"
        " and exists(select label from label_members where article = ? and label = labels.id and assigned = 1)"
        " order by id",
        ["str", "int"],
        [user, article_id],
    ).rows
    return [row["name" if by_name else "id"] for row in rows]


def article_categories_get(storage: Storage, user: str, article_id: Any) -> list[str]:
    article_id = article_validate_id(storage, user, article_id, "article_categories_get")["article"]
    rows = storage.execute(
        "SELECT name from categories where article = ? order by name", ["int"], [article_id]
    ).rows
    return [row["name"] for row in rows]


def article_validate_id(storage: Storage, user: str, article_id: Any, action: str = "article_mark") -> dict:
    require_id(article_id, action, "article")
    row = storage.execute(
        "SELECT articles.id as article,"
        " (select max(id) from editions where article = articles.id) as edition"
        " FROM articles"
        " join subscriptions on subscriptions.feed = articles.feed"
        " WHERE articles.id = ? and subscriptions.owner = ?",
        ["int", "str"],
        [article_id, user],
    ).first()
    if not row:
        raise NotFoundError("subjectMissing", action=action, field="article", id=article_id)
    return row


def article_validate_edition(storage: Storage, user: str, edition_id: Any, action: str = "article_mark") -> dict:
    """Return the edition, its article, and whether it is the article's latest edition."""
    require_id(edition_id, action, "edition")
    row = storage.execute(
        "SELECT editions.id as edition, editions.article as article,"
        " (editions.id = (select max(id) from editions as latest where latest.article = editions.article)) as current"
        " FROM editions"
        " join articles on editions.article = articles.id"
        " join subscriptions on subscriptions.feed = articles.feed"
        " WHERE editions.id = ? and subscriptions.owner = ?",
        ["int", "str"],
        [edition_id, user],
    ).first()
    if not row:
        raise NotFoundError("subjectMissing", action=action, field="edition", id=edition_id)
    return row
