"""
Atomic multi-index writer.

All writes of a collection go through IndexWriter.apply(), which stages one
mutation per declared index into a single atomic batch:

    write:  set(<collection>_by_<field>, record[field]) -> record   for every index
    erase:  delete(<collection>_by_<field>, record[field])          for every index still holding record

so a record is reachable through all of its index keys or through none.
Deletes never touch a key that another record has taken over.

Invariants:
    - One commit per logical write; no retries (a refused batch is returned)
    - Every staged copy of a record is the same dict, stamped before staging
    - With stale cleanup on, keys of the previous version that no longer
      match and still hold this record are deleted in the same batch
    - With optimistic checks on, a record changed since it was read, or an
      index value owned by another record, makes the commit fail

How to change safely:
    - Never commit index entries from more than one batch per operation
    - Keep key derivation in keys.py so reads and writes agree
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..kv.base import AtomicOperation, Check, CommitResult, KvKey, KvStore
from ..schema.types import ID_FIELD
from .keys import derive_key

logger = logging.getLogger(__name__)


class WriteOp(Enum):
    """What to do with every index entry of a record."""

    WRITE = "write"
    ERASE = "erase"


class IndexWriter:
    """Stages and commits the index entries of one collection.

    Attributes:
        collection_name: Collection the entries belong to
        indexes: Indexed field names, identity field included
        cleanup_stale_indexes: Delete entries for values a record no longer has
        optimistic_checks: Stage versionstamp checks on every commit
    """

    def __init__(
        self,
        store: KvStore,
        collection_name: str,
        indexes: Sequence[str],
        cleanup_stale_indexes: bool = True,
        optimistic_checks: bool = False,
    ) -> None:
        self._store = store
        self.collection_name = collection_name
        self.indexes = tuple(indexes)
        self.cleanup_stale_indexes = cleanup_stale_indexes
        self.optimistic_checks = optimistic_checks

    def keys_for(self, record: Mapping[str, Any]) -> Dict[str, KvKey]:
        """Index key of record for every declared index, by field name."""
        return {
            field_name: derive_key(self.collection_name, field_name, record[field_name])
            for field_name in self.indexes
        }

    def id_key(self, record: Mapping[str, Any]) -> KvKey:
        """Key of the identity index entry of record."""
        return derive_key(self.collection_name, ID_FIELD, record[ID_FIELD])

    async def build_checks(
        self,
        record: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]],
        versionstamp: Optional[str],
    ) -> List[Check]:
        """Preconditions for committing record over previous.

        Creation requires every index key to be vacant. Update and erase
        require the identity entry to still be at versionstamp; update also
        requires each newly claimed key to be vacant or to hold a copy of
        this same record.
        """
        if previous is None:
            return [Check(key, None) for key in self.keys_for(record).values()]

        checks = [Check(self.id_key(previous), versionstamp)]

        old_keys = set(self.keys_for(previous).values())
        claimed = [key for key in self.keys_for(record).values() if key not in old_keys]
        if claimed:
            for entry in await self._store.get_many(claimed):
                owner = entry.value.get(ID_FIELD) if isinstance(entry.value, dict) else None
                if entry.present and owner == record[ID_FIELD]:
                    checks.append(Check(entry.key, entry.versionstamp))
                else:
                    # Fails at commit if another record holds the key
                    checks.append(Check(entry.key, None))
        return checks

    async def _owned_keys(
        self,
        atomic: AtomicOperation,
        record: Mapping[str, Any],
        candidates: List[KvKey],
    ) -> List[KvKey]:
        """Keys among candidates that still hold a copy of record.

        A key taken over by another record is left alone. With optimistic
        checks on, each owned key is also checked at the versionstamp read
        here, so a concurrent takeover makes the commit fail.
        """
        if not candidates:
            return []
        owned = []
        id_key = self.id_key(record)
        for entry in await self._store.get_many(candidates):
            owner = entry.value.get(ID_FIELD) if isinstance(entry.value, dict) else None
            if not entry.present or owner != record[ID_FIELD]:
                continue
            owned.append(entry.key)
            if self.optimistic_checks and entry.key != id_key:
                atomic.check(entry.key, entry.versionstamp)
        return owned

    async def apply(
        self,
        record: Mapping[str, Any],
        op: WriteOp,
        *,
        previous: Optional[Mapping[str, Any]] = None,
        versionstamp: Optional[str] = None,
    ) -> CommitResult:
        """Write or erase every index entry of record in one atomic commit.

        Args:
            record: Fully materialized record
            op: WRITE or ERASE
            previous: Stored version record replaces (updates and erases)
            versionstamp: Versionstamp previous was read at

        Returns:
            The store's commit result; ok=False when a check failed
        """
        keys = self.keys_for(record)
        atomic = self._store.atomic()

        if self.optimistic_checks:
            if op == WriteOp.ERASE:
                checks = [Check(self.id_key(record), versionstamp)]
            else:
                checks = await self.build_checks(record, previous, versionstamp)
            for check in checks:
                atomic.check(check.key, check.versionstamp)

        stale: List[KvKey] = []
        if op == WriteOp.WRITE:
            if previous is not None and self.cleanup_stale_indexes:
                current = set(keys.values())
                candidates = [k for k in self.keys_for(previous).values() if k not in current]
                stale = await self._owned_keys(atomic, record, candidates)
                for key in stale:
                    atomic.delete(key)
            for key in keys.values():
                atomic.set(key, record)
        else:
            for key in await self._owned_keys(atomic, record, list(keys.values())):
                atomic.delete(key)

        result = await atomic.commit()

        logger.debug(
            "Committed index batch",
            extra={
                "collection": self.collection_name,
                "op": op.value,
                "record_id": record.get(ID_FIELD),
                "keys": len(keys),
                "stale_keys": len(stale),
                "ok": result.ok,
            },
        )
        return result
