"""
Error types for IndexKV.

This module defines the exceptions raised by collections and schemas:
- IndexKvError: Base exception
- ValidationError: Input, query or patch failed shape validation
- UnknownFieldError: Candidate names a field the shape does not declare
- SchemaError: Collection or shape definition is inconsistent
- DuplicateCollectionError: Collection name already registered on a store

Store-level failures live in indexkv.kv.base (KvStoreError).

Invariants:
    - All errors inherit from IndexKvError
    - Validation errors are raised before any store access
    - Absence (no matching record) is never an error; it is a None return
    - Commit conflicts are never an error; they are CommitResult(ok=False)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class IndexKvError(Exception):
    """Base exception for all IndexKV errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "INDEXKV_ERROR"
        self.details = details or {}


class ValidationError(IndexKvError):
    """Shape validation failed.

    Raised when:
    - Required field is missing
    - Field value has wrong type
    - Field value breaks a constraint (length, range, format, enum)

    Attributes:
        field_name: Dotted path of the first offending field, if known
        errors: Every error message collected during validation
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class UnknownFieldError(ValidationError):
    """Unknown field in a candidate.

    Includes suggestions for similar field names.

    Attributes:
        field_name: The unknown field
        shape_name: The shape being validated
        suggestions: Similar field names
    """

    def __init__(
        self,
        field_name: str,
        shape_name: str,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown field '{field_name}' in shape '{shape_name}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(msg, field_name=field_name, errors=[msg])
        self.code = "UNKNOWN_FIELD"
        self.details.update(
            {
                "shape_name": shape_name,
                "suggestions": suggestions,
            }
        )
        self.shape_name = shape_name
        self.suggestions = suggestions


class SchemaError(IndexKvError):
    """Collection or shape definition is invalid.

    Raised when:
    - An index names a field the shape does not declare
    - An indexed field is not a scalar kind
    - An indexed field may be missing from a record
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_ERROR",
            details={"collection": collection},
        )
        self.collection = collection


class DuplicateCollectionError(SchemaError):
    """A collection with this name is already registered."""

    def __init__(self, collection: str) -> None:
        super().__init__(f"Collection '{collection}' is already registered", collection)
        self.code = "DUPLICATE_COLLECTION"
