"""Folder tree management."""

import logging
from typing import Any, Optional

from feed_store.connection import Storage
from feed_store.exceptions import ConflictError, NotFoundError, ValidationError
from feed_store.query import QueryBuilder
from feed_store.validation import generate_set, is_valid_id, require_id, validate_name

logger = logging.getLogger(__name__)


def folder_add(storage: Storage, user: str, data: dict[str, Any]) -> int:
    """Create a folder, optionally under a parent; returns its id."""
    parent = folder_validate_id(storage, user, data.get("parent"), action="folder_add")["id"]
    name = data.get("name", "")
    folder_validate_name(storage, user, name, "folder_add", check_duplicates=True, parent=parent)
    folder_id = storage.execute(
        "INSERT INTO folders(owner,parent,name) values(?,?,?)",
        ["str", "int", "str"],
        [user, parent, name],
    ).last_id
    logger.info("Added folder %d (%s) for %s", folder_id, name, user)
    return folder_id


def folder_list(storage: Storage, user: str, parent: Optional[int] = None, recursive: bool = True) -> list[dict]:
    """List folders under `parent` (the root when None); all descendants when recursive."""
    parent = folder_validate_id(storage, user, parent, action="folder_list")["id"]
    q = QueryBuilder(
        "SELECT id,name,parent,"
        " (select count(*) from folders as children where children.parent = folders.id) as children,"
        " (select count(*) from subscriptions where subscriptions.folder = folders.id) as feeds"
        " FROM folders"
    )
    if not recursive:
        q.add_where("owner = ?", "str", user)
        q.add_where("coalesce(parent,0) = ?", "strict int", parent)
    else:
        q.add_cte(
            "folder_tree(id)",
            "SELECT id from folders where owner = ? and coalesce(parent,0) = ?"
            " union select folders.id from folders join folder_tree on folders.parent = folder_tree.id",
            ["str", "strict int"],
            [user, parent],
        )
        q.add_where("id in (SELECT id from folder_tree)")
    q.set_order_by("name")
    return storage.execute(*q.render()).rows


def folder_remove(storage: Storage, user: str, folder_id: Any) -> None:
    require_id(folder_id, "folder_remove", "folder")
    changes = storage.execute(
        "DELETE FROM folders where owner = ? and id = ?", ["str", "int"], [user, folder_id]
    ).changes
    if not changes:
        raise NotFoundError("subjectMissing", action="folder_remove", field="folder", id=folder_id)
    logger.info("Removed folder %s for %s", folder_id, user)


def folder_properties_get(storage: Storage, user: str, folder_id: Any) -> dict:
    require_id(folder_id, "folder_properties_get", "folder")
    row = storage.execute(
        "SELECT id,name,parent from folders where owner = ? and id = ?", ["str", "int"], [user, folder_id]
    ).first()
    if not row:
        raise NotFoundError("subjectMissing", action="folder_properties_get", field="folder", id=folder_id)
    return row


def folder_properties_set(storage: Storage, user: str, folder_id: Any, data: dict[str, Any]) -> bool:
    """Rename and/or move a folder. Returns False when nothing would change."""
    action = "folder_properties_set"
    with storage.begin():
        current = folder_validate_id(storage, user, folder_id, action=action, subject=True)
        has_name = "name" in data
        has_parent = "parent" in data
        changes: dict[str, Any] = {}
        if has_name and has_parent:
            validate_name(data["name"], action)
            changes["name"] = data["name"]
            changes["parent"] = folder_validate_move(storage, user, folder_id, data["parent"], data["name"])
        elif has_name:
            folder_validate_name(storage, user, data["name"], action, check_duplicates=True, parent=current["parent"])
            changes["name"] = data["name"]
        elif has_parent:
            changes["parent"] = folder_validate_move(storage, user, folder_id, data["parent"])
        else:
            return False
        set_clause, set_types, set_values = generate_set(changes, {"name": "str", "parent": "int"})
        return bool(storage.execute(
            f"UPDATE folders set {set_clause}, modified = CURRENT_TIMESTAMP where owner = ? and id = ?",
            set_types + ["str", "int"],
            set_values + [user, folder_id],
        ).changes)


def folder_validate_id(
    storage: Storage,
    user: str,
    folder_id: Any = None,
    action: str = "folder",
    subject: bool = False,
) -> dict:
    """Check that a folder exists for the user; None or 0 denote the root."""
    if folder_id is not None and not is_valid_id(folder_id, allow_zero=True):
        raise ValidationError("typeViolation", action=action, field="folder", type="int >= 0")
    if not folder_id:
        return {"id": None, "name": None, "parent": None}
    row = storage.execute(
        "SELECT id,name,parent from folders where owner = ? and id = ?", ["str", "int"], [user, folder_id]
    ).first()
    if not row:
        raise NotFoundError("subjectMissing" if subject else "idMissing", action=action, field="folder", id=folder_id)
    return row


def folder_validate_move(
    storage: Storage,
    user: str,
    folder_id: Any,
    parent: Any = None,
    name: Optional[str] = None,
) -> Optional[int]:
    """Check that `folder_id` may move under `parent`; returns the normalized parent."""
    action = "folder_properties_set"
    if not folder_id:
        # the root cannot be moved
        raise ConflictError("circularDependence", action=action, field="parent", id=parent)
    if parent is None or parent == 0 or parent == "0":
        parent = None
    elif not is_valid_id(parent):
        raise NotFoundError("idMissing", action=action, field="parent", id=parent)
    else:
        parent = int(parent)
    if parent == int(folder_id):
        raise ConflictError("circularDependence", action=action, field="parent", id=parent)
    # the destination must exist, must not be a descendant of the folder, and
    # must not already hold a folder with the same name
    row = storage.execute(
        "WITH RECURSIVE"
        " target as (select ? as owner_id, ? as source, ? as dest, ? as new_name),"
        " folder_tree as (SELECT id from folders join target on owner = owner_id and coalesce(parent,0) = source"
        " union select folders.id as id from folders join folder_tree on folders.parent = folder_tree.id)"
        " SELECT"
        " ((select dest from target) is null or exists(select id from folders join target"
        " on owner = owner_id and id = dest)) as extant,"
        " not exists(select id from folder_tree where id = coalesce((select dest from target),0)) as valid,"
        " not exists(select id from folders join target on owner = owner_id and coalesce(parent,0) = coalesce(dest,0)"
        " and id <> source"
        " and name = coalesce((select new_name from target),(select name from folders where id = (select source from target)))"
        ") as available",
        ["str", "strict int", "int", "str"],
        [user, folder_id, parent, name],
    ).first()
    if not row["extant"]:
        raise NotFoundError("idMissing", action=action, field="parent", id=parent)
    if not row["valid"]:
        raise ConflictError("circularDependence", action=action, field="parent", id=parent)
    if not row["available"]:
        raise ConflictError("constraintViolation", action=action, field="parent" if name is None else "name")
    return parent


def folder_validate_name(
    storage: Storage,
    user: str,
    name: Any,
    action: str,
    check_duplicates: bool = False,
    parent: Optional[int] = None,
) -> None:
    validate_name(name, action)
    if not check_duplicates:
        return
    # NULL parents are never equal in a unique index, so check ourselves
    exists = storage.execute(
        "SELECT exists(select id from folders where owner = ? and coalesce(parent,0) = ? and name = ?)",
        ["str", "strict int", "str"],
        [user, parent or None, name],
    ).value()
    if exists:
        raise ConflictError("constraintViolation", action=action, field="name")
