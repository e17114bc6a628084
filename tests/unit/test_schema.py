"""
Unit tests for schema types.

Tests cover:
- FieldDef creation and validation
- RecordShape creation, parse, partial and extend
- System fields
"""

import pytest

from indexkv.errors import UnknownFieldError, ValidationError
from indexkv.schema.types import (
    SYSTEM_FIELDS,
    FieldDef,
    FieldKind,
    RecordShape,
    field,
)


class TestFieldDef:
    """Tests for FieldDef."""

    def test_create_string_field(self):
        """String field can be created."""
        f = field("title", "str", required=True)
        assert f.name == "title"
        assert f.kind == FieldKind.STRING
        assert f.required is True

    def test_create_enum_field(self):
        """Enum field requires enum_values."""
        f = field("status", "enum", enum_values=["todo", "done"])
        assert f.kind == FieldKind.ENUM
        assert f.enum_values == ("todo", "done")

    def test_enum_field_without_values_raises(self):
        """Enum field without values raises ValueError."""
        with pytest.raises(ValueError, match="enum_values required"):
            field("status", "enum")

    def test_object_field_without_fields_raises(self):
        """Object field needs nested fields."""
        with pytest.raises(ValueError, match="fields required"):
            field("address", "object")

    def test_empty_name_raises(self):
        """Field name cannot be empty."""
        with pytest.raises(ValueError, match="cannot be empty"):
            field("", "str")

    def test_unknown_kind_raises(self):
        """Unknown kind string is rejected."""
        with pytest.raises(ValueError, match="Invalid field kind"):
            field("name", "varchar")

    def test_format_only_on_strings(self):
        """Format applies to string fields only."""
        with pytest.raises(ValueError, match="format only applies"):
            field("age", "int", format="email")

    def test_unknown_format_raises(self):
        with pytest.raises(ValueError, match="Unknown format"):
            field("site", "str", format="url")

    def test_min_length_greater_than_max_raises(self):
        with pytest.raises(ValueError, match="min_length > max_length"):
            field("code", "str", min_length=5, max_length=2)

    def test_validate_required_field(self):
        """Required field validation."""
        f = field("title", "str", required=True)
        is_valid, error = f.validate_value(None)
        assert not is_valid
        assert "required" in error

    def test_validate_enum_value(self):
        """Enum value validation."""
        f = field("status", "enum", enum_values=("todo", "done"))

        is_valid, _ = f.validate_value("todo")
        assert is_valid

        is_valid, error = f.validate_value("invalid")
        assert not is_valid
        assert "must be one of" in error

    def test_optional_drops_required_and_default(self):
        """optional() makes the field omittable and removes its default."""
        f = field("activated", "bool", required=True, default=False)
        opt = f.optional()
        assert opt.required is False
        assert opt.default is None
        assert f.required is True

    def test_optional_is_deep_for_objects(self):
        """Nested fields become optional too."""
        f = field(
            "address",
            "object",
            required=True,
            fields=[field("city", "str", required=True)],
        )
        opt = f.optional()
        assert opt.fields[0].required is False

    def test_scalar_kinds(self):
        assert FieldKind.STRING.is_scalar
        assert FieldKind.TIMESTAMP.is_scalar
        assert not FieldKind.JSON.is_scalar
        assert not FieldKind.LIST_STRING.is_scalar
        assert not FieldKind.OBJECT.is_scalar


class TestRecordShape:
    """Tests for RecordShape."""

    @pytest.fixture
    def user_shape(self):
        return RecordShape(
            name="users",
            fields=(
                field("email", "str", required=True, format="email"),
                field("username", "str", required=True),
                field("password", "str", required=True, min_length=8, max_length=32),
                field("firstname", "str"),
                field("activated", "bool", default=False),
            ),
        )

    def test_duplicate_field_names_raise(self):
        with pytest.raises(ValueError, match="Duplicate field name"):
            RecordShape(name="users", fields=(field("a", "str"), field("a", "int")))

    def test_empty_name_raises(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            RecordShape(name="")

    def test_get_field(self, user_shape):
        assert user_shape.get_field("email").kind == FieldKind.STRING
        assert user_shape.get_field("missing") is None

    def test_parse_applies_defaults_in_field_order(self, user_shape):
        parsed = user_shape.parse(
            {"password": "azeazeaze", "username": "a", "email": "a@b.com"}
        )
        assert list(parsed) == ["email", "username", "password", "activated"]
        assert parsed["activated"] is False

    def test_parse_does_not_mutate_input(self, user_shape):
        candidate = {"email": "a@b.com", "username": "a", "password": "azeazeaze"}
        user_shape.parse(candidate)
        assert "activated" not in candidate

    def test_parse_rejects_unknown_field(self, user_shape):
        with pytest.raises(UnknownFieldError) as exc_info:
            user_shape.parse(
                {"email": "a@b.com", "username": "a", "password": "azeazeaze", "usrname": "x"}
            )
        assert "username" in exc_info.value.suggestions

    def test_parse_collects_every_error(self, user_shape):
        with pytest.raises(ValidationError) as exc_info:
            user_shape.parse({"email": "nope", "password": "short"})
        errors = exc_info.value.errors
        assert len(errors) == 3
        assert exc_info.value.field_name == "email"

    def test_partial_accepts_empty(self, user_shape):
        assert user_shape.partial().parse({}) == {}

    def test_partial_does_not_apply_defaults(self, user_shape):
        assert user_shape.partial().parse({"firstname": "John"}) == {"firstname": "John"}

    def test_partial_still_checks_types(self, user_shape):
        with pytest.raises(ValidationError):
            user_shape.partial().parse({"email": 42})

    def test_extend_appends_fields(self, user_shape):
        extended = user_shape.extend(*SYSTEM_FIELDS)
        assert extended.get_field_names()[-3:] == ["id", "created_at", "updated_at"]
        assert user_shape.get_field("id") is None

    def test_extend_replaces_same_name_in_place(self, user_shape):
        extended = user_shape.extend(field("username", "str", min_length=3))
        names = extended.get_field_names()
        assert names.index("username") == 1
        assert extended.get_field("username").min_length == 3

    def test_defaults_are_copied(self):
        shape = RecordShape(name="posts", fields=(field("tags", "list_str", default=[]),))
        first = shape.parse({})
        first["tags"].append("x")
        assert shape.parse({})["tags"] == []


class TestSystemFields:
    """Tests for the generated system fields."""

    def test_system_field_names(self):
        assert [f.name for f in SYSTEM_FIELDS] == ["id", "created_at", "updated_at"]

    def test_id_must_be_uuid(self):
        id_field = SYSTEM_FIELDS[0]
        assert isinstance(id_field, FieldDef)
        is_valid, _ = id_field.validate_value("4429562d-1730-4805-bcfa-04e38a475851")
        assert is_valid
        is_valid, error = id_field.validate_value("not-a-uuid")
        assert not is_valid
        assert "UUID" in error
