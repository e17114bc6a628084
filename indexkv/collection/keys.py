"""
Index key derivation.

Every index entry lives under a two-part key:

    ("<collection>_by_<field>", canonical_string(value))

The first part namespaces one index of one collection; the second is the
indexed value rendered in a stable string form.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from ..kv.base import KvKey


def index_namespace(collection_name: str, field_name: str) -> str:
    """First key segment for one index of one collection."""
    return f"{collection_name}_by_{field_name}"


def canonical_string(value: Any) -> str:
    """Render a scalar value in its canonical key form.

    Booleans are "true"/"false"; integral floats render like ints so 1 and
    1.0 address the same entry.

    Raises:
        TypeError: If the value is not an indexable scalar
    """
    if isinstance(value, Enum):
        value = value.value

    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)

    raise TypeError(f"Cannot index value of type {type(value).__name__}: {value!r}")


def derive_key(collection_name: str, field_name: str, value: Any) -> KvKey:
    """Physical key of the index entry for field_name == value."""
    return (index_namespace(collection_name, field_name), canonical_string(value))
