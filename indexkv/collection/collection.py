"""
Collection: the CRUD surface of IndexKV.

A Collection binds a record shape to a store under a name and a set of
indexed fields. Every record is stored once per index:

    ("users_by_id", "<uuid>")            -> record
    ("users_by_email", "a@b.com")        -> record
    ("users_by_username", "a")           -> record

Reads resolve a query to those keys in one get_many(); writes go through
IndexWriter so every copy is written or erased by the same atomic commit.

Invariants:
    - Validation happens before any store access
    - Absence is returned as None, never raised
    - A refused commit is returned as CommitResult(ok=False), never retried
    - id and created_at never change after create()

Example:
    >>> users = Collection(UserShape, store=store, name="users", indexes=["email", "username"])
    >>> await users.create({"email": "a@b.com", "username": "a", "password": "azeazeaze"})
    CommitResult(ok=True, versionstamp='00000000000000000001')
    >>> user = await users.find_one({"email": "a@b.com"})
    >>> await users.update_by_id(user["id"], {"firstname": "John"})
    >>> await users.delete_one({"username": "a"})
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Sequence

from ..config import CollectionDefaults
from ..errors import SchemaError
from ..kv.base import CommitResult, KvEntry, KvStore
from ..schema.registry import CollectionDefinition, CollectionRegistry, registry_for
from ..schema.types import ID_FIELD, SYSTEM_FIELDS, RecordShape
from .keys import derive_key
from .materialize import materialize
from .resolver import LookupResolver
from .writer import IndexWriter, WriteOp

logger = logging.getLogger(__name__)


def _normalize_indexes(indexes: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate indexes preserving order and make sure id is present."""
    return tuple(dict.fromkeys([*indexes, ID_FIELD]))


class Collection:
    """Schema-validated records kept under several index keys.

    Attributes:
        name: Collection name, first part of every index namespace
        shape: Declared shape (without system fields)
        full_shape: Shape of a persisted record (declared + system fields)
        query_shape: Partial full shape used to validate queries
        patch_shape: Partial declared shape used to validate patches
        indexes: Indexed field names, id included
    """

    def __init__(
        self,
        shape: RecordShape,
        *,
        store: KvStore,
        name: str,
        indexes: Sequence[str] = (),
        cleanup_stale_indexes: bool = True,
        optimistic_checks: bool = False,
        registry: Optional[CollectionRegistry] = None,
    ) -> None:
        """Initialize the collection.

        Args:
            shape: Declared record shape
            store: Key-value store handle (owned by the caller)
            name: Collection name, unique per store
            indexes: Fields to index in addition to id
            cleanup_stale_indexes: Erase entries of old values on update
            optimistic_checks: Make concurrent writers conflict instead of
                overwriting each other
            registry: Registry enforcing unique names (defaults to the
                registry bound to store)

        Raises:
            SchemaError: If the name or an index is invalid
            DuplicateCollectionError: If name is registered with another definition
        """
        if not name:
            raise SchemaError("Collection name cannot be empty")

        self.name = name
        self.shape = shape
        self.full_shape = shape.extend(*SYSTEM_FIELDS)
        self.query_shape = self.full_shape.partial()
        self.patch_shape = shape.partial()
        self.indexes = _normalize_indexes(indexes)
        self._check_indexes()

        self._store = store
        self._resolver = LookupResolver(store, name, self.indexes)
        self._writer = IndexWriter(
            store,
            name,
            self.indexes,
            cleanup_stale_indexes=cleanup_stale_indexes,
            optimistic_checks=optimistic_checks,
        )

        registry = registry if registry is not None else registry_for(store)
        registry.register(CollectionDefinition(name, shape, self.indexes))

    @classmethod
    def from_defaults(
        cls,
        shape: RecordShape,
        *,
        store: KvStore,
        name: str,
        indexes: Sequence[str] = (),
        defaults: Optional[CollectionDefaults] = None,
    ) -> Collection:
        """Build a collection using configured defaults (environment if omitted)."""
        defaults = defaults or CollectionDefaults.from_env()
        return cls(
            shape,
            store=store,
            name=name,
            indexes=indexes,
            cleanup_stale_indexes=defaults.cleanup_stale_indexes,
            optimistic_checks=defaults.optimistic_checks,
        )

    def _check_indexes(self) -> None:
        """Every index must name a scalar field every record is guaranteed to have."""
        system_names = {f.name for f in SYSTEM_FIELDS}
        for field_name in self.indexes:
            field_def = self.full_shape.get_field(field_name)
            if field_def is None:
                raise SchemaError(
                    f"Index '{field_name}' is not a field of collection '{self.name}'",
                    self.name,
                )
            if not field_def.kind.is_scalar:
                raise SchemaError(
                    f"Index '{field_name}' has non-indexable kind '{field_def.kind.value}'",
                    self.name,
                )
            if field_name not in system_names and not field_def.required and field_def.default is None:
                raise SchemaError(
                    f"Indexed field '{field_name}' must be required or have a default",
                    self.name,
                )

    @property
    def cleanup_stale_indexes(self) -> bool:
        return self._writer.cleanup_stale_indexes

    @property
    def optimistic_checks(self) -> bool:
        return self._writer.optimistic_checks

    async def create(self, data: Dict[str, Any]) -> CommitResult:
        """Validate data, mint a new record and write it under every index.

        Raises:
            ValidationError: If data does not match the shape
        """
        parsed = self.shape.parse(data)
        record = materialize(None, parsed, is_creation=True)
        result = await self._writer.apply(record, WriteOp.WRITE)

        logger.debug(
            "Created record",
            extra={"collection": self.name, "record_id": record[ID_FIELD], "ok": result.ok},
        )
        return result

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Find a record by exact match on any indexed field of query.

        Raises:
            ValidationError: If query does not match the partial shape
        """
        parsed = self.query_shape.parse(query)
        return await self._resolver.find(parsed)

    async def find_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Find a record by id."""
        return await self.find_one({ID_FIELD: record_id})

    async def _resolve_current(self, query: Dict[str, Any]) -> Optional[KvEntry]:
        """Resolve query, then re-read the matched record through its id entry.

        A secondary index may hold an out-of-date copy when stale cleanup is
        off; the id entry always holds the current record.
        """
        entry = await self._resolver.resolve(query)
        if entry is None:
            return None
        record_id = entry.value[ID_FIELD]
        if entry.key == derive_key(self.name, ID_FIELD, record_id):
            return entry
        return await self._resolver.resolve({ID_FIELD: record_id})

    async def update_one(
        self,
        query: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> Optional[CommitResult]:
        """Deep-merge patch into the record matching query.

        Returns:
            CommitResult, or None if no record matches

        Raises:
            ValidationError: If query or patch does not match the partial shape
        """
        parsed_patch = self.patch_shape.parse(patch)
        parsed_query = self.query_shape.parse(query)

        entry = await self._resolve_current(parsed_query)
        if entry is None:
            return None

        existing = entry.value
        record = self.full_shape.parse(materialize(existing, parsed_patch, is_creation=False))
        result = await self._writer.apply(
            record,
            WriteOp.WRITE,
            previous=existing,
            versionstamp=entry.versionstamp,
        )

        logger.debug(
            "Updated record",
            extra={"collection": self.name, "record_id": record[ID_FIELD], "ok": result.ok},
        )
        return result

    async def update_by_id(
        self,
        record_id: str,
        patch: Dict[str, Any],
    ) -> Optional[CommitResult]:
        """Deep-merge patch into the record with this id."""
        return await self.update_one({ID_FIELD: record_id}, patch)

    async def delete_one(self, query: Dict[str, Any]) -> Optional[CommitResult]:
        """Erase every index entry of the record matching query.

        Returns:
            CommitResult, or None if no record matches
        """
        parsed_query = self.query_shape.parse(query)

        entry = await self._resolve_current(parsed_query)
        if entry is None:
            return None

        result = await self._writer.apply(
            entry.value,
            WriteOp.ERASE,
            versionstamp=entry.versionstamp,
        )

        logger.debug(
            "Deleted record",
            extra={"collection": self.name, "record_id": entry.value.get(ID_FIELD), "ok": result.ok},
        )
        return result

    async def delete_by_id(self, record_id: str) -> Optional[CommitResult]:
        """Erase the record with this id."""
        return await self.delete_one({ID_FIELD: record_id})

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, indexes={list(self.indexes)!r})"
