"""
Grouping helpers for fanned-out join rows

A join across several one-to-many relations repeats each child once per
row of the other relations. These helpers group rows by their parent key
and then de-duplicate each child collection by identity.
"""
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

T = TypeVar("T")


def group_by(
    rows: Iterable[Any],
    key: Callable[[Any], Hashable],
    value: Optional[Callable[[Any], Any]] = None,
) -> Dict[Hashable, List[Any]]:
    """
    Group rows by key, preserving row order within each group

    Example:
        group_by([(1, "a"), (2, "b"), (1, "c")], key=lambda r: r[0], value=lambda r: r[1])
        -> {1: ["a", "c"], 2: ["b"]}
    """
    groups: Dict[Hashable, List[Any]] = {}
    for row in rows:
        groups.setdefault(key(row), []).append(row if value is None else value(row))
    return groups


def unique_by(
    items: Iterable[Optional[T]],
    key: Callable[[T], Hashable] = lambda item: item.id,
) -> List[T]:
    """Drop None and repeated items (first occurrence wins), keeping order"""
    seen = set()
    result: List[T] = []
    for item in items:
        if item is None:
            continue
        identity = key(item)
        if identity in seen:
            continue
        seen.add(identity)
        result.append(item)
    return result
