"""
In-process evaluation of MongoDB-style filters and sort specifications.

Supports the subset of the query language the application issues:
equality, ``$eq``, ``$ne``, ``$gt``, ``$gte``, ``$lt``, ``$lte``, ``$in``,
``$nin`` and ``$regex`` (with ``$options``), on top-level or dotted field
paths. As in MongoDB, a path that crosses an array matches when any
element matches.
"""

import re
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from order_portal.core.timeutils import ensure_aware
from order_portal.store.base import Filter, Record, SortSpec

_MISSING = object()


def _resolve(value: Any, parts: list[str]) -> list[Any]:
    if not parts:
        if isinstance(value, list):
            return [value, *value]
        return [value]
    if isinstance(value, list):
        found: list[Any] = []
        for element in value:
            found.extend(_resolve(element, parts))
        return found
    if isinstance(value, dict):
        head, *rest = parts
        if head not in value:
            return [_MISSING]
        return _resolve(value[head], rest)
    return [_MISSING]


def resolve_path(record: Record, path: str) -> list[Any]:
    """All values reachable at a dotted path; ``_MISSING`` when absent."""
    return _resolve(record, path.split("."))


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        return ensure_aware(value)
    return value


def _compare(op: Callable[[Any, Any], bool], left: Any, right: Any) -> bool:
    if left is _MISSING or left is None or right is None:
        return False
    try:
        return op(_normalize(left), _normalize(right))
    except TypeError:
        return False


def _equals(left: Any, right: Any) -> bool:
    if left is _MISSING:
        return right is None
    return _normalize(left) == _normalize(right)


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$gt": lambda a, b: _compare(lambda x, y: x > y, a, b),
    "$gte": lambda a, b: _compare(lambda x, y: x >= y, a, b),
    "$lt": lambda a, b: _compare(lambda x, y: x < y, a, b),
    "$lte": lambda a, b: _compare(lambda x, y: x <= y, a, b),
    "$in": lambda a, b: any(_equals(a, candidate) for candidate in b),
}


def _regex_matches(candidates: list[Any], pattern: Any, options: str) -> bool:
    flags = 0
    for option in options:
        if option == "i":
            flags |= re.IGNORECASE
        elif option == "m":
            flags |= re.MULTILINE
        elif option == "s":
            flags |= re.DOTALL
        else:
            raise ValueError(f"Unsupported regex option: {option}")
    compiled = re.compile(pattern, flags)
    return any(isinstance(c, str) and compiled.search(c) for c in candidates)


def _condition_matches(candidates: list[Any], condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(
        key.startswith("$") for key in condition
    ):
        for op, operand in condition.items():
            if op == "$options":
                if "$regex" not in condition:
                    raise ValueError("$options requires $regex")
            elif op == "$regex":
                if not _regex_matches(candidates, operand, condition.get("$options", "")):
                    return False
            elif op == "$ne":
                if any(_equals(c, operand) for c in candidates):
                    return False
            elif op == "$nin":
                if any(_equals(c, o) for c in candidates for o in operand):
                    return False
            elif op in _OPERATORS:
                if not any(_OPERATORS[op](c, operand) for c in candidates):
                    return False
            else:
                raise ValueError(f"Unsupported query operator: {op}")
        return True
    return any(_equals(c, condition) for c in candidates)


def matches(record: Record, query: Optional[Filter]) -> bool:
    """Check whether a record satisfies every condition of ``query``."""
    if not query:
        return True
    return all(
        _condition_matches(resolve_path(record, path), condition)
        for path, condition in query.items()
    )


def _sort_key(path: str) -> Callable[[Record], tuple[bool, Any]]:
    def key(record: Record) -> tuple[bool, Any]:
        value = resolve_path(record, path)[0]
        if value is _MISSING or value is None:
            return (False, 0)
        return (True, _normalize(value))

    return key


def apply_query(
    records: Iterable[Record],
    query: Optional[Filter] = None,
    sort: Optional[SortSpec] = None,
    limit: Optional[int] = None,
    skip: int = 0,
) -> list[Record]:
    """Filter, sort and page records the way a MongoDB cursor would."""
    selected = [record for record in records if matches(record, query)]
    # Stable sorts applied from the least significant key.
    for path, direction in reversed(list(sort or [])):
        selected.sort(key=_sort_key(path), reverse=direction < 0)
    if skip:
        selected = selected[skip:]
    if limit:
        selected = selected[:limit]
    return selected
