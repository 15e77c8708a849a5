"""Exceptions raised by the feed store."""

from typing import Any

MESSAGES = {
    "typeViolation": "Field '{field}' of action '{action}' expects a value of type {type}",
    "missing": "Field '{field}' of action '{action}' is required",
    "whitespace": "Field '{field}' of action '{action}' may not be only whitespace",
    "tooShort": "Field '{field}' of action '{action}' needs at least {min} item(s)",
    "tooLong": "Field '{field}' of action '{action}' accepts at most {max} item(s) per query",
    "idMissing": "Referenced {field} with ID '{id}' does not exist (action '{action}')",
    "subjectMissing": "The {field} with ID '{id}' does not exist (action '{action}')",
    "constraintViolation": "Field '{field}' of action '{action}' duplicates an existing value",
    "circularDependence": "Using {field} '{id}' for action '{action}' would create a circular dependence",
    "stale": "Transaction scope was already finished; cannot {action}",
}


class FeedStoreError(Exception):
    """Base error carrying a machine-readable code and the offending data."""

    def __init__(self, code: str, **data: Any):
        self.code = code
        self.data = data
        template = MESSAGES.get(code)
        if template is None:
            message = f"{code}: {data}"
        else:
            message = template.format_map(_Defaults(data))
        super().__init__(message)


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return "?"


class InputError(FeedStoreError):
    """Caller-supplied input could not be used."""


class ValidationError(InputError):
    """A value is malformed or out of range; detected before touching storage."""


class NotFoundError(InputError):
    """A referenced object does not exist or does not belong to the user."""


class ConflictError(InputError):
    """The operation conflicts with existing data or a hard limit."""


class TransactionError(FeedStoreError):
    """A transaction scope was used after it finished."""
