"""
Schema module for IndexKV.

This module provides the data-driven record shapes used by collections:
- Field and shape definitions (FieldDef, RecordShape, field)
- The validation rule engine behind RecordShape.parse()
- The per-store collection registry

Invariants:
    - Shapes are immutable once built
    - parse() validates before any store access
    - Collection names are unique per store
"""

from .registry import CollectionDefinition, CollectionRegistry, registry_for
from .types import (
    CREATED_AT_FIELD,
    ID_FIELD,
    SYSTEM_FIELDS,
    UPDATED_AT_FIELD,
    FieldDef,
    FieldKind,
    RecordShape,
    field,
)
from .validate import check_value, parse_record, validate_record

__all__ = [
    # Types
    "FieldDef",
    "FieldKind",
    "RecordShape",
    "field",
    "ID_FIELD",
    "CREATED_AT_FIELD",
    "UPDATED_AT_FIELD",
    "SYSTEM_FIELDS",
    # Validation
    "check_value",
    "parse_record",
    "validate_record",
    # Registry
    "CollectionDefinition",
    "CollectionRegistry",
    "registry_for",
]
