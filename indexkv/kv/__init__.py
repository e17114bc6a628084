"""
Key-value store abstraction for IndexKV.

This module provides the sorted key-value substrate collections are built on:
- SQLite (durable, single file)
- In-memory (for testing)

Invariants:
    - commit() is all-or-nothing across every staged key
    - get_many() answers every key in one round trip, in input order
    - Stores are owned by the caller; collections never close them

How to change safely:
    - New backends must implement the KvStore protocol
    - Run the integration suite against every backend
"""

from .base import (
    AtomicOperation,
    Check,
    CommitResult,
    KvEntry,
    KvKey,
    KvKeyError,
    KvStore,
    KvStoreClosedError,
    KvStoreError,
    Mutation,
    MutationKind,
    open_store,
)
from .memory import InMemoryKvStore
from .sqlite import SqliteKvStore

__all__ = [
    # Protocol and types
    "KvStore",
    "KvKey",
    "KvEntry",
    "CommitResult",
    "AtomicOperation",
    "Check",
    "Mutation",
    "MutationKind",
    "KvStoreError",
    "KvStoreClosedError",
    "KvKeyError",
    # Factory
    "open_store",
    # Implementations
    "InMemoryKvStore",
    "SqliteKvStore",
]
