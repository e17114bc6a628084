"""
Collection module for IndexKV - indexed records over a key-value store.

This module handles:
- Index key derivation (keys.py)
- Record materialization: identity, timestamps, deep merge (materialize.py)
- Atomic multi-index writes (writer.py)
- Exact-match lookups across indexes (resolver.py)
- The CRUD facade tying them together (collection.py)

Invariants:
    - Every write of a record is one atomic commit across all its indexes
    - Reads never scan; a lookup is one get_many() over derived keys
"""

from .collection import Collection
from .keys import canonical_string, derive_key, index_namespace
from .materialize import deep_merge, materialize
from .resolver import LookupResolver
from .writer import IndexWriter, WriteOp

__all__ = [
    "Collection",
    "IndexWriter",
    "WriteOp",
    "LookupResolver",
    "derive_key",
    "index_namespace",
    "canonical_string",
    "materialize",
    "deep_merge",
]
