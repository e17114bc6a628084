"""
Collection registry for IndexKV.

Collection names are the first segment of every physical index key, so two
collections sharing one name on one store would read and overwrite each
other's entries. The registry is the authority that keeps names unique:
- One registry per store handle (see registry_for)
- Re-registering an identical definition is a no-op
- Registering a different definition under a taken name fails

Invariants:
    - A name maps to exactly one (shape, indexes) definition per store
    - Registration is thread-safe
    - Registries die with their store (weak references)

Example:
    >>> registry = CollectionRegistry()
    >>> registry.register(CollectionDefinition("users", UserShape, ("email", "id")))
    >>> registry.get("users").indexes
    ('email', 'id')
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from ..errors import DuplicateCollectionError
from .types import RecordShape

logger = logging.getLogger(__name__)

_registries: "weakref.WeakKeyDictionary[Any, CollectionRegistry]" = weakref.WeakKeyDictionary()
_registries_lock = threading.Lock()


@dataclass(frozen=True)
class CollectionDefinition:
    """What a collection stores and how it is indexed.

    Attributes:
        name: Collection name, unique per store
        shape: Declared shape of the records (without system fields)
        indexes: Indexed field names, identity field included
    """

    name: str
    shape: RecordShape
    indexes: tuple[str, ...]


class CollectionRegistry:
    """Registry of collection definitions bound to one store.

    Thread-safety:
        Registration and lookup take an internal lock.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._collections: Dict[str, CollectionDefinition] = {}
        self._lock = threading.Lock()

    def register(self, definition: CollectionDefinition) -> None:
        """Register a collection definition.

        Args:
            definition: The collection to register

        Raises:
            DuplicateCollectionError: If the name is taken by a different definition
        """
        with self._lock:
            existing = self._collections.get(definition.name)
            if existing is not None:
                if existing == definition:
                    return
                raise DuplicateCollectionError(definition.name)

            self._collections[definition.name] = definition
            logger.debug(
                f"Registered collection: {definition.name} (indexes={list(definition.indexes)})"
            )

    def unregister(self, name: str) -> bool:
        """Remove a collection definition.

        Returns:
            True if removed, False if the name was not registered
        """
        with self._lock:
            return self._collections.pop(name, None) is not None

    def get(self, name: str) -> Optional[CollectionDefinition]:
        """Get a collection definition by name."""
        with self._lock:
            return self._collections.get(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._collections

    def __iter__(self) -> Iterator[CollectionDefinition]:
        with self._lock:
            return iter(list(self._collections.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._collections)


def registry_for(store: Any) -> CollectionRegistry:
    """Get the collection registry bound to a store handle.

    The registry is created on first use and released when the store is
    garbage collected.
    """
    with _registries_lock:
        registry = _registries.get(store)
        if registry is None:
            registry = CollectionRegistry()
            _registries[store] = registry
        return registry
