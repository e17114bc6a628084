"""
Record validation for IndexKV.

This module is the rule engine behind RecordShape.parse():
- Field-level checks per FieldKind plus length/range/format constraints
- Record-level parsing with defaults and nested objects
- Helpful error messages with suggestions for unknown fields

Invariants:
    - Validation errors are deterministic (fields checked in declaration order)
    - Error messages carry the dotted path of the offending field
    - Unknown fields are reported before any other error
"""

from __future__ import annotations

import copy
import json
import re
from difflib import get_close_matches
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..errors import UnknownFieldError, ValidationError
from .types import FieldKind

if TYPE_CHECKING:
    from .types import FieldDef, RecordShape

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_length(field_def: FieldDef, path: str, value: Any) -> Optional[str]:
    if field_def.min_length is not None and len(value) < field_def.min_length:
        return f"Field '{path}' must have length >= {field_def.min_length}"
    if field_def.max_length is not None and len(value) > field_def.max_length:
        return f"Field '{path}' must have length <= {field_def.max_length}"
    return None


def _check_range(field_def: FieldDef, path: str, value: Any) -> Optional[str]:
    if field_def.min_value is not None and value < field_def.min_value:
        return f"Field '{path}' must be >= {field_def.min_value}"
    if field_def.max_value is not None and value > field_def.max_value:
        return f"Field '{path}' must be <= {field_def.max_value}"
    return None


def _check_string(field_def: FieldDef, path: str, value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return f"Field '{path}' must be a string, got {type(value).__name__}"

    error = _check_length(field_def, path, value)
    if error:
        return error

    if field_def.format == "email" and not _EMAIL_RE.match(value):
        return f"Field '{path}' must be a valid email address"
    if field_def.format == "uuid" and not _UUID_RE.match(value):
        return f"Field '{path}' must be a valid UUID"
    if field_def.pattern and not re.fullmatch(field_def.pattern, value):
        return f"Field '{path}' must match pattern {field_def.pattern!r}"

    return None


def check_value(field_def: FieldDef, value: Any, path: str) -> Optional[str]:
    """Validate a single non-None field value.

    OBJECT fields are checked as whole nested records.

    Returns error message if invalid, None if valid.
    """
    kind = field_def.kind

    if kind == FieldKind.STRING:
        return _check_string(field_def, path, value)

    elif kind == FieldKind.INTEGER:
        if not _is_int(value):
            return f"Field '{path}' must be an integer, got {type(value).__name__}"
        return _check_range(field_def, path, value)

    elif kind == FieldKind.FLOAT:
        if not _is_number(value):
            return f"Field '{path}' must be a number, got {type(value).__name__}"
        return _check_range(field_def, path, value)

    elif kind == FieldKind.BOOLEAN:
        if not isinstance(value, bool):
            return f"Field '{path}' must be a boolean, got {type(value).__name__}"

    elif kind == FieldKind.TIMESTAMP:
        if not _is_int(value) or value < 0:
            return f"Field '{path}' must be a positive integer timestamp"
        return _check_range(field_def, path, value)

    elif kind == FieldKind.BYTES:
        if not isinstance(value, bytes):
            return f"Field '{path}' must be bytes, got {type(value).__name__}"
        return _check_length(field_def, path, value)

    elif kind == FieldKind.ENUM:
        if not isinstance(value, str):
            return f"Field '{path}' must be a string, got {type(value).__name__}"
        if field_def.enum_values and value not in field_def.enum_values:
            return f"Field '{path}' must be one of {field_def.enum_values}, got '{value}'"

    elif kind == FieldKind.LIST_STRING:
        if not isinstance(value, list):
            return f"Field '{path}' must be a list, got {type(value).__name__}"
        for i, item in enumerate(value):
            if not isinstance(item, str):
                return f"Field '{path}[{i}]' must be a string"
        return _check_length(field_def, path, value)

    elif kind == FieldKind.LIST_INT:
        if not isinstance(value, list):
            return f"Field '{path}' must be a list, got {type(value).__name__}"
        for i, item in enumerate(value):
            if not _is_int(item):
                return f"Field '{path}[{i}]' must be an integer"
        return _check_length(field_def, path, value)

    elif kind == FieldKind.JSON:
        try:
            json.dumps(value, allow_nan=False)
        except (TypeError, ValueError):
            return f"Field '{path}' must be JSON-serializable, got {type(value).__name__}"

    elif kind == FieldKind.OBJECT:
        try:
            parse_record(field_def.nested_shape(), value, path)
        except ValidationError as exc:
            return exc.errors[0] if exc.errors else exc.message

    return None


def _unknown_fields(shape: RecordShape, candidate: Dict[str, Any]) -> List[str]:
    known = {f.name for f in shape.fields}
    return sorted(set(candidate.keys()) - known)


def validate_record(
    shape: RecordShape,
    candidate: Dict[str, Any],
) -> Tuple[bool, List[str]]:
    """Validate a candidate record against a shape without raising.

    Args:
        shape: Shape to validate against
        candidate: Record to validate

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    try:
        parse_record(shape, candidate)
    except UnknownFieldError as exc:
        return False, [exc.message]
    except ValidationError as exc:
        return False, exc.errors or [exc.message]
    return True, []


def parse_record(
    shape: RecordShape,
    candidate: Any,
    path: str = "",
) -> Dict[str, Any]:
    """Validate a candidate and build the parsed record.

    Args:
        shape: Shape to validate against
        candidate: Candidate mapping
        path: Dotted path prefix for nested records

    Returns:
        New dict with keys in field declaration order and defaults applied

    Raises:
        UnknownFieldError: If an unknown field is provided
        ValidationError: If validation fails
    """
    if not isinstance(candidate, dict):
        where = f"Field '{path}'" if path else f"Record for {shape.name}"
        msg = f"{where} must be an object, got {type(candidate).__name__}"
        raise ValidationError(msg, field_name=path or None, errors=[msg])

    # Check unknown fields first (for better error messages)
    unknown = _unknown_fields(shape, candidate)
    if unknown:
        field_name = unknown[0]
        suggestions = get_close_matches(field_name, shape.get_field_names(), n=3)
        raise UnknownFieldError(_join(path, field_name), shape.name, suggestions)

    result: Dict[str, Any] = {}
    errors: List[str] = []
    first_error: Optional[str] = None

    for field_def in shape.fields:
        field_path = _join(path, field_def.name)
        value = candidate.get(field_def.name)

        if value is None:
            if field_def.default is not None:
                value = copy.deepcopy(field_def.default)
            elif field_def.required:
                errors.append(f"Field '{field_path}' is required")
                first_error = first_error or field_path
                continue
            else:
                continue

        if field_def.kind == FieldKind.OBJECT:
            try:
                value = parse_record(field_def.nested_shape(), value, field_path)
            except UnknownFieldError:
                raise
            except ValidationError as exc:
                errors.extend(exc.errors)
                first_error = first_error or exc.field_name or field_path
                continue
        else:
            error = check_value(field_def, value, field_path)
            if error:
                errors.append(error)
                first_error = first_error or field_path
                continue

        result[field_def.name] = value

    if errors:
        raise ValidationError(
            f"Validation failed for {shape.name}: {'; '.join(errors)}",
            field_name=first_error,
            errors=errors,
        )

    return result
