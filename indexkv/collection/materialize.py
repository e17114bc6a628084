"""
Record materialization.

Builds the full record that gets written to every index: generated identity
and timestamps on creation, deep-merged patch and refreshed updated_at on
update. Nothing here touches the store.
"""

from __future__ import annotations

import copy
import time
import uuid
from typing import Any, Dict, Mapping, Optional

from ..schema.types import CREATED_AT_FIELD, ID_FIELD, UPDATED_AT_FIELD

_SYSTEM_FIELD_NAMES = frozenset({ID_FIELD, CREATED_AT_FIELD, UPDATED_AT_FIELD})


def now_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


def deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge patch onto base without mutating either.

    Nested dicts merge key-wise; lists and all other values in patch replace
    the base value wholesale.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def materialize(
    existing: Optional[Mapping[str, Any]],
    patch: Mapping[str, Any],
    *,
    is_creation: bool,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """Assemble the full record to persist.

    Args:
        existing: Current stored record (ignored on creation)
        patch: Validated input fields (creation) or validated patch (update)
        is_creation: Whether a new identity is being minted
        now: Timestamp override in Unix ms, mainly for tests

    Returns:
        New record dict; inputs are left untouched

    Raises:
        ValueError: If an update is requested without an existing record
    """
    timestamp = now if now is not None else now_ms()

    if is_creation:
        record: Dict[str, Any] = {ID_FIELD: str(uuid.uuid4())}
        record.update(
            (key, copy.deepcopy(value))
            for key, value in patch.items()
            if key not in _SYSTEM_FIELD_NAMES
        )
        record[CREATED_AT_FIELD] = timestamp
        record[UPDATED_AT_FIELD] = timestamp
        return record

    if existing is None:
        raise ValueError("Cannot materialize an update without an existing record")

    record = deep_merge(existing, patch)
    # Identity and creation time are immutable
    record[ID_FIELD] = existing[ID_FIELD]
    record[CREATED_AT_FIELD] = existing[CREATED_AT_FIELD]
    # updated_at strictly advances even when two writes share a millisecond
    previous = existing.get(UPDATED_AT_FIELD)
    if isinstance(previous, int) and timestamp <= previous:
        timestamp = previous + 1
    record[UPDATED_AT_FIELD] = timestamp
    return record
