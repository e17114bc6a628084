"""
Lookup resolution for exact-match queries.

A query is a mapping of field name to value. Each pair on an indexed field
becomes one physical key; all keys are fetched with a single get_many() and
the first one holding a value wins. This is an OR across indexes, not an AND
across fields.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..kv.base import KvEntry, KvKey, KvStore
from .keys import derive_key

logger = logging.getLogger(__name__)


class LookupResolver:
    """Resolves queries against the index entries of one collection."""

    def __init__(self, store: KvStore, collection_name: str, indexes: Sequence[str]) -> None:
        self._store = store
        self.collection_name = collection_name
        self.indexes = tuple(indexes)

    def keys_for_query(self, query: Mapping[str, Any]) -> List[KvKey]:
        """Physical keys for the indexed pairs of query, in query order.

        Pairs on non-indexed fields are skipped: no entry can ever live
        under them.
        """
        keys = []
        for field_name, value in query.items():
            if field_name not in self.indexes:
                logger.debug(
                    "Ignoring query on non-indexed field",
                    extra={"collection": self.collection_name, "field": field_name},
                )
                continue
            keys.append(derive_key(self.collection_name, field_name, value))
        return keys

    async def resolve(self, query: Mapping[str, Any]) -> Optional[KvEntry]:
        """Find the first stored entry matching any indexed pair of query.

        Returns:
            The entry (value and versionstamp) or None. Empty queries and
            queries without indexed fields return None without a store read.
        """
        if not query:
            return None

        keys = self.keys_for_query(query)
        if not keys:
            return None

        for entry in await self._store.get_many(keys):
            if entry.present:
                return entry
        return None

    async def find(self, query: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Like resolve(), returning only the stored record."""
        entry = await self.resolve(query)
        return entry.value if entry is not None else None
