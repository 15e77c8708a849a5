"""User records; credentials and sessions live outside the feed store."""

import logging

from feed_store.connection import Storage
from feed_store.exceptions import ConflictError, NotFoundError
from feed_store.validation import validate_name

logger = logging.getLogger(__name__)


def user_exists(storage: Storage, user: str) -> bool:
    return bool(storage.execute("SELECT count(*) from users where id = ?", ["str"], [user]).value())


def user_add(storage: Storage, user: str) -> None:
    validate_name(user, "user_add", "user")
    if user_exists(storage, user):
        raise ConflictError("constraintViolation", action="user_add", field="user")
    storage.execute("INSERT INTO users(id) values(?)", ["str"], [user])
    logger.info("Added user %s", user)


def user_remove(storage: Storage, user: str) -> None:
    if not storage.execute("DELETE from users where id = ?", ["str"], [user]).changes:
        raise NotFoundError("subjectMissing", action="user_remove", field="user", id=user)
    logger.info("Removed user %s", user)
