"""
In-memory key-value store implementation.

This module provides a simple in-memory KvStore backend for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on close() or process exit
    - Provides the same atomicity and versionstamp guarantees as SqliteKvStore
    - Stored values are deep copies; callers never share state with the store

How to change safely:
    - Keep interface compatible with the KvStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import (
    AtomicOperation,
    Check,
    CommitResult,
    KvEntry,
    KvKey,
    KvStoreClosedError,
    Mutation,
    collapse_mutations,
    format_versionstamp,
    validate_key,
)

logger = logging.getLogger(__name__)


class InMemoryKvStore:
    """In-memory implementation of KvStore.

    Thread safety:
        Uses an asyncio lock around commits. Safe to use from multiple
        coroutines on one event loop.

    Example:
        >>> store = InMemoryKvStore()
        >>> await store.atomic().set(("users_by_id", "1"), {"id": "1"}).commit()
        CommitResult(ok=True, versionstamp='00000000000000000001')
        >>> (await store.get_many([("users_by_id", "1")]))[0].value
        {'id': '1'}
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._data: Dict[KvKey, Tuple[Any, str]] = {}
        self._counter = 0
        self._closed = False
        self._lock = asyncio.Lock()
        self.commit_count = 0
        self.failed_commit_count = 0

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise KvStoreClosedError("Store is closed")

    async def get_many(self, keys: Sequence[Sequence[str]]) -> List[KvEntry]:
        """Read several keys; absent keys come back with value=None."""
        self._ensure_open()
        entries = []
        for raw_key in keys:
            key = validate_key(raw_key)
            stored = self._data.get(key)
            if stored is None:
                entries.append(KvEntry(key=key))
            else:
                value, versionstamp = stored
                entries.append(KvEntry(key=key, value=copy.deepcopy(value), versionstamp=versionstamp))
        return entries

    def atomic(self) -> AtomicOperation:
        """Start a new atomic batch."""
        self._ensure_open()
        return AtomicOperation(self._commit)

    async def _commit(self, checks: List[Check], mutations: List[Mutation]) -> CommitResult:
        self._ensure_open()
        async with self._lock:
            for check in checks:
                current = self._current_versionstamp(check.key)
                if current != check.versionstamp:
                    self.failed_commit_count += 1
                    logger.debug(
                        "Atomic check failed",
                        extra={
                            "key": list(check.key),
                            "expected": check.versionstamp,
                            "actual": current,
                        },
                    )
                    return CommitResult(ok=False)

            self._counter += 1
            versionstamp = format_versionstamp(self._counter)
            changes = collapse_mutations(mutations)
            for key in changes.deletes:
                self._data.pop(key, None)
            for key, value in changes.writes.items():
                self._data[key] = (copy.deepcopy(value), versionstamp)
            self.commit_count += 1

        return CommitResult(ok=True, versionstamp=versionstamp)

    def _current_versionstamp(self, key: KvKey) -> Optional[str]:
        stored = self._data.get(key)
        return stored[1] if stored is not None else None

    async def list_keys(self, prefix: Sequence[str] = ()) -> List[KvKey]:
        """List stored keys starting with prefix, in key order."""
        self._ensure_open()
        prefix = tuple(prefix)
        return sorted(k for k in self._data if k[: len(prefix)] == prefix)

    async def close(self) -> None:
        """Close and clear all data."""
        self._closed = True
        self._data.clear()
        logger.debug("InMemoryKvStore closed")

    # Testing helpers

    def __len__(self) -> int:
        return len(self._data)
