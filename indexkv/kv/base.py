"""
Base protocol and types for the key-value store abstraction.

This module defines the KvStore protocol that all backends must implement,
the atomic batch builder they share, and the common types for keys,
entries, commit results and errors.

Invariants:
    - Keys are non-empty tuples of strings, ordered element-wise
    - get_many() preserves input order and reports absent keys as value=None
    - commit() applies every staged mutation or none of them
    - Every key written by one commit carries that commit's versionstamp
    - A failed check is reported as CommitResult(ok=False), never raised

How to change safely:
    - Protocol changes require updating all implementations
    - Keep versionstamps comparable as strings (fixed-width hex)
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

if TYPE_CHECKING:
    from ..config import IndexKvConfig

logger = logging.getLogger(__name__)

KvKey = Tuple[str, ...]

_BYTES_TAG = "$bytes"


class KvStoreError(Exception):
    """Base exception for key-value store operations."""

    pass


class KvStoreClosedError(KvStoreError):
    """Operation attempted on a closed store."""

    pass


class KvKeyError(KvStoreError):
    """Key is not a non-empty tuple of strings."""

    pass


class MutationKind(Enum):
    """Kinds of staged mutations."""

    SET = "set"
    DELETE = "delete"


@dataclass(frozen=True)
class KvEntry:
    """One key read from the store.

    Attributes:
        key: The key that was read
        value: Stored value, or None when the key is absent
        versionstamp: Versionstamp of the commit that last wrote the key,
            or None when the key is absent
    """

    key: KvKey
    value: Any = None
    versionstamp: Optional[str] = None

    @property
    def present(self) -> bool:
        """Whether the key holds a value."""
        return self.versionstamp is not None


@dataclass(frozen=True)
class CommitResult:
    """Outcome of an atomic commit.

    Attributes:
        ok: True if every staged mutation was applied
        versionstamp: Versionstamp assigned to the commit (None when refused)
    """

    ok: bool
    versionstamp: Optional[str] = None


@dataclass(frozen=True)
class Check:
    """Staged precondition: key must be at this versionstamp (None = absent)."""

    key: KvKey
    versionstamp: Optional[str]


@dataclass(frozen=True)
class Mutation:
    """Staged write or delete."""

    kind: MutationKind
    key: KvKey
    value: Any = None


def validate_key(key: Sequence[str]) -> KvKey:
    """Normalize a key to a tuple and reject malformed ones.

    Raises:
        KvKeyError: If the key is empty or has a non-string part
    """
    key = tuple(key)
    if not key:
        raise KvKeyError("Key must have at least one part")
    for part in key:
        if not isinstance(part, str):
            raise KvKeyError(f"Key parts must be strings, got {type(part).__name__} in {key!r}")
    return key


def format_versionstamp(counter: int) -> str:
    """Render a commit counter as a fixed-width, string-ordered versionstamp."""
    return f"{counter:020x}"


def _encode_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return {_BYTES_TAG: base64.b64encode(bytes(value)).decode("ascii")}
    raise TypeError(f"Object of type {type(value).__name__} is not storable")


def _decode_hook(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1 and _BYTES_TAG in obj:
        return base64.b64decode(obj[_BYTES_TAG])
    return obj


def encode_value(value: Any) -> str:
    """Serialize a stored value to JSON text; bytes are base64-tagged."""
    return json.dumps(value, default=_encode_default, separators=(",", ":"))


def decode_value(text: str) -> Any:
    """Inverse of encode_value()."""
    return json.loads(text, object_hook=_decode_hook)


def encode_key(key: KvKey) -> str:
    """Serialize a key to the text form stored by SQL backends."""
    return json.dumps(list(key), separators=(",", ":"))


def decode_key(text: str) -> KvKey:
    """Inverse of encode_key()."""
    return tuple(json.loads(text))


CommitFn = Callable[[List[Check], List[Mutation]], Awaitable[CommitResult]]


class AtomicOperation:
    """Builder for an all-or-nothing batch of checks and mutations.

    Staging calls return the builder so they can be chained. Nothing
    touches the store until commit().

    Example:
        >>> result = await (
        ...     store.atomic()
        ...     .check(("users_by_id", user_id), versionstamp)
        ...     .set(("users_by_id", user_id), record)
        ...     .delete(("users_by_email", old_email))
        ...     .commit()
        ... )
        >>> result.ok
        True
    """

    def __init__(self, commit_fn: CommitFn) -> None:
        self._commit_fn = commit_fn
        self._checks: List[Check] = []
        self._mutations: List[Mutation] = []
        self._committed = False

    @property
    def checks(self) -> List[Check]:
        """Staged checks, in staging order."""
        return list(self._checks)

    @property
    def mutations(self) -> List[Mutation]:
        """Staged mutations, in staging order."""
        return list(self._mutations)

    def check(self, key: Sequence[str], versionstamp: Optional[str]) -> AtomicOperation:
        """Require key to be at versionstamp (or absent when None) at commit time."""
        self._checks.append(Check(validate_key(key), versionstamp))
        return self

    def set(self, key: Sequence[str], value: Any) -> AtomicOperation:
        """Stage a write."""
        self._mutations.append(Mutation(MutationKind.SET, validate_key(key), value))
        return self

    def delete(self, key: Sequence[str]) -> AtomicOperation:
        """Stage a delete."""
        self._mutations.append(Mutation(MutationKind.DELETE, validate_key(key)))
        return self

    async def commit(self) -> CommitResult:
        """Apply the batch.

        Returns:
            CommitResult(ok=True, versionstamp=...) if applied,
            CommitResult(ok=False) if a check failed

        Raises:
            KvStoreError: If the batch was already committed or the store failed
        """
        if self._committed:
            raise KvStoreError("Atomic operation already committed")
        self._committed = True
        return await self._commit_fn(list(self._checks), list(self._mutations))


@runtime_checkable
class KvStore(Protocol):
    """Protocol for sorted key-value stores with atomic multi-key commits.

    Implementations:
        - InMemoryKvStore: For testing and local development
        - SqliteKvStore: Durable single-file store
    """

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        ...

    async def get_many(self, keys: Sequence[Sequence[str]]) -> List[KvEntry]:
        """Read several keys in one round trip.

        Args:
            keys: Keys to read

        Returns:
            One KvEntry per input key, in input order
        """
        ...

    def atomic(self) -> AtomicOperation:
        """Start a new atomic batch."""
        ...

    async def list_keys(self, prefix: Sequence[str] = ()) -> List[KvKey]:
        """List stored keys starting with prefix, in key order."""
        ...

    async def close(self) -> None:
        """Release resources held by the store."""
        ...


@dataclass
class StagedChanges:
    """Scratch space used by backends while applying one commit."""

    writes: Dict[KvKey, Any] = field(default_factory=dict)
    deletes: List[KvKey] = field(default_factory=list)


def collapse_mutations(mutations: List[Mutation]) -> StagedChanges:
    """Reduce staged mutations to their final effect per key.

    Later mutations on the same key win over earlier ones.
    """
    state = StagedChanges()
    for mutation in mutations:
        if mutation.kind == MutationKind.SET:
            state.writes[mutation.key] = mutation.value
            if mutation.key in state.deletes:
                state.deletes.remove(mutation.key)
        else:
            state.writes.pop(mutation.key, None)
            if mutation.key not in state.deletes:
                state.deletes.append(mutation.key)
    return state


def open_store(config: "IndexKvConfig") -> KvStore:
    """Factory function to create a store from configuration.

    Args:
        config: IndexKV configuration

    Returns:
        Appropriate KvStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryKvStore
    from .sqlite import SqliteKvStore

    if config.backend == StoreBackend.MEMORY:
        return InMemoryKvStore()
    elif config.backend == StoreBackend.SQLITE:
        return SqliteKvStore(
            config.sqlite.path,
            wal_mode=config.sqlite.wal_mode,
            busy_timeout_ms=config.sqlite.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
