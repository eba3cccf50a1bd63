"""Name resolution against directory listings."""

from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")


def resolve_by_name(
    name: str,
    candidates: Iterable[T],
    key: Callable[[T], str],
) -> T | None:
    """Find the candidate whose name best matches ``name``.

    Tiers are tried in order: exact match, case-insensitive match, then
    case-insensitive substring match. The first candidate matching at the
    highest tier wins.

    Args:
        name: Name as entered or selected by the operator
        candidates: Objects to search
        key: Returns the display name of a candidate

    Returns:
        The matching candidate, or None if nothing matches
    """
    name = name.strip()
    if not name:
        return None

    items = list(candidates)
    lowered = name.lower()

    for item in items:
        if key(item) == name:
            return item

    for item in items:
        if key(item).lower() == lowered:
            return item

    for item in items:
        if lowered in key(item).lower():
            return item

    return None
