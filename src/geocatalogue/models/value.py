"""JSON value union and soft accessors.

Catalogue content is a dynamic JSON tree. It is kept as plain Python values
(``None``, ``bool``, ``int``/``float``, ``str``, ``list``, ``dict``) and read
through the accessors below, which return ``None`` on a shape mismatch
instead of raising.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any, TypeAlias

JsonValue: TypeAlias = None | bool | int | float | str | list["JsonValue"] | dict[str, "JsonValue"]
JsonMap: TypeAlias = dict[str, JsonValue]

#: Keys starting with this prefix carry metadata, not content items.
RESERVED_PREFIX = "_"
METADATA_KEY = "_metadata"


class ValueKind(StrEnum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    MAP = "map"


def kind_of(value: Any) -> ValueKind | None:
    """Return the JSON kind of *value*, or ``None`` if it is not JSON-like."""
    if value is None:
        return ValueKind.NULL
    # bool before number: bool is an int subclass.
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, list):
        return ValueKind.ARRAY
    if isinstance(value, dict):
        return ValueKind.MAP
    return None


def is_reserved_key(key: str) -> bool:
    return key.startswith(RESERVED_PREFIX)


def as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    result = float(value)
    if math.isnan(result):
        return None
    return result


def as_list(value: Any) -> list[JsonValue] | None:
    return value if isinstance(value, list) else None


def as_map(value: Any) -> JsonMap | None:
    return value if isinstance(value, dict) else None


def dig(value: Any, *path: str) -> JsonValue:
    """Follow *path* through nested maps; ``None`` if any step is missing."""
    current = value
    for key in path:
        mapping = as_map(current)
        if mapping is None:
            return None
        current = mapping.get(key)
    return current


def content_keys(content: Any) -> list[str]:
    """Return the non-reserved top-level keys of map content."""
    mapping = as_map(content)
    if mapping is None:
        return []
    return [key for key in mapping if not is_reserved_key(key)]


def has_content_items(content: Any) -> bool:
    return bool(content_keys(content))
