"""
String Helpers.

Single source of truth for the snake_case -> camelCase boundary.
Models use snake_case attributes; the local cache and the sync snapshot
keep the camelCase keys the stored JSON has always used.
"""

from __future__ import annotations

from typing import Optional, Union

__all__ = [
    "JsonValue",
    "to_camel_case",
    "matches_search",
]

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

def to_camel_case(name: str) -> str:
    """Convert snake_case to camelCase.

    Used as the pydantic ``alias_generator`` for every persisted model::

        tracking_code   -> trackingCode
        created_by_id   -> createdById
        id              -> id
    """
    head, *tail = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in tail)


def matches_search(term: Optional[str], *fields: Optional[str]) -> bool:
    """Case-insensitive substring match of *term* against any of *fields*.

    An empty or ``None`` term matches everything.
    """
    if not term:
        return True
    needle = term.strip().lower()
    return any(needle in (value or "").lower() for value in fields)
