"""
IndexKV - schema-validated records with secondary indexes on a key-value store.

Each record of a collection is stored once per indexed field, under a key
derived from that field's value. All copies are written and erased by a
single atomic commit of the underlying store.

Architecture:
    ┌──────────────┐   parse    ┌───────────────┐
    │  Collection  │───────────▶│  RecordShape  │
    │  (CRUD API)  │            └───────────────┘
    └──┬────────┬──┘
       │ read   │ write
       ▼        ▼
    ┌────────┐ ┌──────────────┐   ┌─────────────┐
    │Resolver│ │ Materializer │──▶│ IndexWriter │
    └───┬────┘ └──────────────┘   └──────┬──────┘
        │ get_many()                      │ atomic().commit()
        ▼                                 ▼
    ┌─────────────────────────────────────────────┐
    │     KvStore (in-memory / SQLite)            │
    └─────────────────────────────────────────────┘

Invariants:
    - A record is present under all of its index keys or under none
    - Validation failures are raised before the store is touched
    - Missing records are None; refused commits are CommitResult(ok=False)

Example:
    >>> from indexkv import Collection, InMemoryKvStore, RecordShape, field
    >>> store = InMemoryKvStore()
    >>> users = Collection(
    ...     RecordShape("users", (field("email", "str", required=True, format="email"),)),
    ...     store=store,
    ...     name="users",
    ...     indexes=["email"],
    ... )
    >>> await users.create({"email": "a@b.com"})
"""

from ._version import __version__
from .collection import Collection
from .config import IndexKvConfig, StoreBackend
from .errors import (
    DuplicateCollectionError,
    IndexKvError,
    SchemaError,
    UnknownFieldError,
    ValidationError,
)
from .kv import (
    CommitResult,
    InMemoryKvStore,
    KvStore,
    KvStoreError,
    SqliteKvStore,
    open_store,
)
from .log import setup_logging
from .schema import FieldDef, FieldKind, RecordShape, field

__all__ = [
    "__version__",
    # Collections
    "Collection",
    # Schema
    "RecordShape",
    "FieldDef",
    "FieldKind",
    "field",
    # Stores
    "KvStore",
    "InMemoryKvStore",
    "SqliteKvStore",
    "CommitResult",
    "open_store",
    # Configuration
    "IndexKvConfig",
    "StoreBackend",
    "setup_logging",
    # Errors
    "IndexKvError",
    "ValidationError",
    "UnknownFieldError",
    "SchemaError",
    "DuplicateCollectionError",
    "KvStoreError",
]
