"""
Core type definitions for IndexKV record shapes.

This module defines the data-driven schema used to validate records:
- FieldKind: Supported value kinds
- FieldDef: One field of a shape (kind, optionality, default, constraints)
- RecordShape: An ordered tuple of fields with parse/partial/extend

A shape is declared once per collection as an explicit list of field
descriptors; validation is performed by the rule engine in validate.py.

Invariants:
    - Field names are unique within a shape
    - Defaults are deep-copied into every parsed record
    - Nested OBJECT fields carry their own field tuple
    - partial() never applies defaults and makes every field optional

Example:
    >>> from indexkv.schema.types import RecordShape, field
    >>> User = RecordShape(
    ...     name="users",
    ...     fields=(
    ...         field("email", "str", required=True, format="email"),
    ...         field("username", "str", required=True),
    ...         field("password", "str", required=True, min_length=8, max_length=32),
    ...         field("activated", "bool", default=False),
    ...     ),
    ... )
    >>> User.parse({"email": "a@b.com", "username": "a", "password": "azeazeaze"})
    {'email': 'a@b.com', 'username': 'a', 'password': 'azeazeaze', 'activated': False}
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Iterable

# System fields stamped onto every persisted record
ID_FIELD = "id"
CREATED_AT_FIELD = "created_at"
UPDATED_AT_FIELD = "updated_at"


class FieldKind(Enum):
    """Supported field kinds.

    These map to validation rules and to how a value is rendered in an
    index key.
    """

    STRING = "str"
    INTEGER = "int"
    FLOAT = "float"
    BOOLEAN = "bool"
    TIMESTAMP = "timestamp"  # Unix milliseconds
    JSON = "json"  # Arbitrary JSON value
    BYTES = "bytes"
    ENUM = "enum"  # Enumerated string values
    LIST_STRING = "list_str"
    LIST_INT = "list_int"
    OBJECT = "object"  # Nested record with its own fields

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")

    @property
    def is_scalar(self) -> bool:
        """Whether values of this kind have a canonical string form."""
        return self in SCALAR_KINDS


SCALAR_KINDS = frozenset(
    {
        FieldKind.STRING,
        FieldKind.INTEGER,
        FieldKind.FLOAT,
        FieldKind.BOOLEAN,
        FieldKind.TIMESTAMP,
        FieldKind.ENUM,
    }
)

STRING_FORMATS = ("email", "uuid")


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single field within a shape.

    Attributes:
        name: Field name (key in the record dict)
        kind: The data kind of the field
        required: Whether the field must be present on a full parse
        default: Value used when the field is absent (deep-copied)
        enum_values: Valid values if kind is ENUM
        fields: Nested field definitions if kind is OBJECT
        min_length: Minimum length for strings and lists
        max_length: Maximum length for strings and lists
        min_value: Minimum for numeric kinds
        max_value: Maximum for numeric kinds
        format: Named string format ("email" or "uuid")
        pattern: Regular expression a string must fully match
        description: Human-readable description
    """

    name: str
    kind: FieldKind
    required: bool = False
    default: Any = None
    enum_values: tuple[str, ...] | None = None
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    min_length: int | None = None
    max_length: int | None = None
    min_value: float | None = None
    max_value: float | None = None
    format: str | None = None
    pattern: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.ENUM and not self.enum_values:
            raise ValueError(f"enum_values required for ENUM field '{self.name}'")
        if self.kind == FieldKind.OBJECT and not self.fields:
            raise ValueError(f"fields required for OBJECT field '{self.name}'")
        if self.format is not None:
            if self.kind != FieldKind.STRING:
                raise ValueError(f"format only applies to str fields, not '{self.name}'")
            if self.format not in STRING_FORMATS:
                raise ValueError(
                    f"Unknown format '{self.format}' for field '{self.name}'. "
                    f"Valid formats: {list(STRING_FORMATS)}"
                )
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError(f"min_length > max_length for field '{self.name}'")

    def optional(self) -> FieldDef:
        """Copy of this field that may be omitted and has no default.

        Nested OBJECT fields become optional all the way down, so a patch
        may name only the nested keys it changes.
        """
        nested = tuple(f.optional() for f in self.fields)
        return replace(self, required=False, default=None, fields=nested)

    def nested_shape(self) -> RecordShape:
        """Shape of the nested record for an OBJECT field."""
        return RecordShape(name=self.name, fields=self.fields)

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this field definition.

        Returns:
            Tuple of (is_valid, error_message)
        """
        from .validate import check_value

        if value is None:
            if self.required and self.default is None:
                return False, f"Field '{self.name}' is required"
            return True, None

        error = check_value(self, value, self.name)
        return error is None, error


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    default: Any = None,
    enum_values: Iterable[str] | None = None,
    fields: Iterable[FieldDef] | None = None,
    min_length: int | None = None,
    max_length: int | None = None,
    min_value: float | None = None,
    max_value: float | None = None,
    format: str | None = None,
    pattern: str | None = None,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    This is the preferred way to declare fields in a shape.

    Example:
        >>> email = field("email", "str", required=True, format="email")
        >>> status = field("status", "enum", enum_values=("todo", "done"), default="todo")
        >>> address = field("address", "object", fields=[field("city", "str")])
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        default=default,
        enum_values=tuple(enum_values) if enum_values is not None else None,
        fields=tuple(fields or ()),
        min_length=min_length,
        max_length=max_length,
        min_value=min_value,
        max_value=max_value,
        format=format,
        pattern=pattern,
        description=description,
    )


@dataclass(frozen=True)
class RecordShape:
    """Declared shape of the records in one collection.

    Attributes:
        name: Label used in error messages (usually the collection name)
        fields: Ordered field definitions

    Invariants:
        - Field names are unique
        - parse() output keys follow field declaration order
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate shape definition."""
        if not self.name:
            raise ValueError("Shape name cannot be empty")

        field_names = [f.name for f in self.fields]
        if len(field_names) != len(set(field_names)):
            raise ValueError(f"Duplicate field name in shape '{self.name}'")

    def get_field(self, name: str) -> FieldDef | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        """Get list of all field names."""
        return [f.name for f in self.fields]

    def parse(self, candidate: Any) -> dict[str, Any]:
        """Validate a candidate and return the parsed record.

        Defaults are filled in, None values are treated as absent.

        Raises:
            UnknownFieldError: If the candidate names an undeclared field
            ValidationError: If any field fails validation
        """
        from .validate import parse_record

        return parse_record(self, candidate)

    def partial(self) -> RecordShape:
        """Shape with every field optional and no defaults, for patches and queries."""
        return RecordShape(name=self.name, fields=tuple(f.optional() for f in self.fields))

    def extend(self, *fields: FieldDef) -> RecordShape:
        """Shape with extra fields appended.

        A field whose name is already declared replaces the existing one in
        place.
        """
        extra = {f.name: f for f in fields}
        merged = [extra.pop(f.name, f) for f in self.fields]
        merged.extend(extra.values())
        return RecordShape(name=self.name, fields=tuple(merged))


SYSTEM_FIELDS: tuple[FieldDef, ...] = (
    field(ID_FIELD, FieldKind.STRING, required=True, format="uuid"),
    field(CREATED_AT_FIELD, FieldKind.TIMESTAMP, required=True),
    field(UPDATED_AT_FIELD, FieldKind.TIMESTAMP, required=True),
)
