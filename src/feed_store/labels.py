"""User labels and their article memberships."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from feed_store.connection import Storage
from feed_store.context import FilterContext
from feed_store.exceptions import ConflictError, NotFoundError, ValidationError
from feed_store.validation import generate_set, is_valid_id, validate_name

logger = logging.getLogger(__name__)

_LABEL_COLUMNS = (
    "SELECT id,name,"
    " (select count(*) from label_members where label = id and assigned = 1) as articles,"
    " (select count(*) from label_members"
    " join marks on label_members.article = marks.article and label_members.subscription = marks.subscription"
    " where label = id and assigned = 1 and read = 1) as read"
    " FROM labels"
)


def _lookup(by_name: bool) -> tuple[str, str]:
    return ("name", "str") if by_name else ("id", "int")


def label_add(storage: Storage, user: str, data: dict[str, Any]) -> int:
    name = validate_name(data.get("name", ""), "label_add")
    try:
        label_id = storage.execute(
            "INSERT INTO labels(owner,name) values(?,?)", ["str", "str"], [user, name]
        ).last_id
    except IntegrityError as exc:
        raise ConflictError("constraintViolation", action="label_add", field="name") from exc
    logger.info("Added label %d (%s) for %s", label_id, name, user)
    return label_id


def label_list(storage: Storage, user: str, include_empty: bool = True) -> list[dict]:
    return storage.execute(
        f"{_LABEL_COLUMNS} where owner = ? and articles >= ? order by name",
        ["str", "int"],
        [user, not include_empty],
    ).rows


def label_remove(storage: Storage, user: str, label_id: Any, by_name: bool = False) -> None:
    label_validate_id(storage, user, label_id, by_name, check_db=False, action="label_remove")
    field, param_type = _lookup(by_name)
    changes = storage.execute(
        f"DELETE FROM labels where owner = ? and {field} = ?", ["str", param_type], [user, label_id]
    ).changes
    if not changes:
        raise NotFoundError("subjectMissing", action="label_remove", field="label", id=label_id)
    logger.info("Removed label %s for %s", label_id, user)


def label_properties_get(storage: Storage, user: str, label_id: Any, by_name: bool = False) -> dict:
    label_validate_id(storage, user, label_id, by_name, check_db=False, action="label_properties_get")
    field, param_type = _lookup(by_name)
    row = storage.execute(
        f"{_LABEL_COLUMNS} where {field} = ? and owner = ?", [param_type, "str"], [label_id, user]
    ).first()
    if not row:
        raise NotFoundError("subjectMissing", action="label_properties_get", field="label", id=label_id)
    return row


def label_properties_set(
    storage: Storage,
    user: str,
    label_id: Any,
    data: dict[str, Any],
    by_name: bool = False,
) -> bool:
    action = "label_properties_set"
    label_validate_id(storage, user, label_id, by_name, check_db=False, action=action)
    if data.get("name") is not None:
        validate_name(data["name"], action)
    set_clause, set_types, set_values = generate_set(data, {"name": "str"})
    if not set_clause:
        return False
    field, param_type = _lookup(by_name)
    try:
        changes = storage.execute(
            f"UPDATE labels set {set_clause}, modified = CURRENT_TIMESTAMP where owner = ? and {field} = ?",
            set_types + ["str", param_type],
            set_values + [user, label_id],
        ).changes
    except IntegrityError as exc:
        raise ConflictError("constraintViolation", action=action, field="name") from exc
    if not changes:
        raise NotFoundError("subjectMissing", action=action, field="label", id=label_id)
    return True


def label_articles_get(storage: Storage, user: str, label_id: Any, by_name: bool = False) -> list[int]:
    """Ids of the articles currently assigned to a label."""
    action = "label_articles_get"
    label_validate_id(storage, user, label_id, by_name, check_db=False, action=action)
    field, param_type = _lookup(by_name)
    rows = storage.execute(
        f"SELECT article from label_members join labels on label = id"
        f" where assigned = 1 and {field} = ? and owner = ? order by article",
        [param_type, "str"],
        [label_id, user],
    ).rows
    if not rows:
        # an empty result must still name an existing label
        label_validate_id(storage, user, label_id, by_name, subject=True, action=action)
    return [row["article"] for row in rows]


def label_articles_set(
    storage: Storage,
    user: str,
    label_id: Any,
    context: Optional[FilterContext] = None,
    remove: bool = False,
    by_name: bool = False,
) -> int:
    """Assign (or unassign) a label to every article matching the context.

    Memberships are kept when unassigned so that the change is visible to
    clients synchronizing by marked date.
    """
    from feed_store.articles import ArticleQueryAssembler

    action = "label_articles_set"
    label_id = label_validate_id(storage, user, label_id, by_name, action=action)["id"]
    context = context or FilterContext()
    changed = 0
    with storage.begin():
        q = ArticleQueryAssembler(storage).build(user, context, action=action)
        q.add_where(
            "exists(select article from label_members where label = ? and article = articles.id)", "int", label_id
        )
        q.promote_body_to_cte("target_articles")
        q.set_body(
            "UPDATE label_members set assigned = ?, modified = CURRENT_TIMESTAMP"
            " where label = ? and assigned = not ? and article in (select id from target_articles)",
            ["bool", "int", "bool"],
            [not remove, label_id, not remove],
        )
        changed += storage.execute(*q.render()).changes
        if not remove:
            q = ArticleQueryAssembler(storage).build(user, context, action=action)
            q.add_where(
                "not exists(select article from label_members where label = ? and article = articles.id)",
                "int",
                label_id,
            )
            q.promote_body_to_cte("target_articles")
            q.set_body(
                "INSERT INTO label_members(label,article,subscription)"
                " SELECT ?,id,subscription FROM target_articles",
                "int",
                label_id,
            )
            changed += storage.execute(*q.render()).changes
    logger.debug("Label %s: %d memberships changed for %s", label_id, changed, user)
    return changed


def label_validate_id(
    storage: Storage,
    user: str,
    label_id: Any,
    by_name: bool = False,
    check_db: bool = True,
    subject: bool = False,
    action: str = "label",
) -> dict:
    """Check a label reference; with `check_db` the label must exist for the user."""
    if not by_name and not is_valid_id(label_id):
        raise ValidationError("typeViolation", action=action, field="label", type="int > 0")
    if by_name and (not isinstance(label_id, str) or not label_id.strip()):
        raise ValidationError("typeViolation", action=action, field="label", type="string")
    if not check_db:
        return {"id": None if by_name else label_id, "name": label_id if by_name else None}
    field, param_type = _lookup(by_name)
    row = storage.execute(
        f"SELECT id,name from labels where {field} = ? and owner = ?", [param_type, "str"], [label_id, user]
    ).first()
    if not row:
        raise NotFoundError(
            "subjectMissing" if subject else "idMissing", action=action, field="label", id=label_id
        )
    return row
