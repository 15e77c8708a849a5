"""Input checks shared by the feed store operations."""

from typing import Any, Iterable

from feed_store.exceptions import ValidationError


def is_valid_id(value: Any, allow_zero: bool = False) -> bool:
    """True for positive integers (or integer strings); zero only when allowed."""
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return False
        value = int(value)
    if not isinstance(value, int):
        return False
    return value > 0 or (allow_zero and value == 0)


def require_id(value: Any, action: str, field: str, allow_zero: bool = False) -> int:
    if not is_valid_id(value, allow_zero):
        raise ValidationError(
            "typeViolation", action=action, field=field, type="int >= 0" if allow_zero else "int > 0"
        )
    return int(value)


def clean_id_list(values: Iterable[Any]) -> list[int]:
    """Keep the valid ids of a list, de-duplicated, in first-seen order."""
    seen: dict[int, None] = {}
    for value in values:
        if is_valid_id(value):
            seen.setdefault(int(value), None)
    return list(seen)


def validate_name(name: Any, action: str, field: str = "name") -> str:
    """Names must be non-empty strings that are not only whitespace."""
    if name is None or name == "":
        raise ValidationError("missing", action=action, field=field)
    if not isinstance(name, str):
        raise ValidationError("typeViolation", action=action, field=field, type="string")
    if not name.strip():
        raise ValidationError("whitespace", action=action, field=field)
    return name


def generate_set(props: dict, valid: dict[str, str]) -> tuple[str, list[str], list[Any]]:
    """Build an UPDATE ... SET clause from the supplied properties that are allowed."""
    clauses, types, values = [], [], []
    for prop, param_type in valid.items():
        if prop not in props:
            continue
        clauses.append(f"{prop} = ?")
        types.append(param_type)
        values.append(props[prop])
    return ", ".join(clauses), types, values


def generate_in(values: list[Any], param_type: str) -> tuple[str, list[str]]:
    """Placeholders and types for an IN (...) list."""
    return ",".join("?" for _ in values), [param_type] * len(values)
