"""Tests for schema introspection and argument validation."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from genbridge.foundation.schema import (
    FieldMetadata,
    get_array_element_type,
    get_enum_values,
    get_field_type_name,
    get_shape,
    introspect,
    is_field_required,
    validate_arguments,
)


class Framework(Enum):
    REACT = "react"
    VUE = "vue"


class Nested(BaseModel):
    key: str


class Params(BaseModel):
    name: str = Field(description="Entity name")
    count: float | None = None
    retries: int = 3
    force: bool = False
    tags: list[str] = Field(default_factory=list)
    framework: Framework = Framework.REACT
    mode: Literal["fast", "safe"] = "safe"
    options: Nested | None = None
    size: Annotated[int, Field(ge=0)] = 0
    display_name: str = Field(default="", alias="displayName")


JSON_PARAMS = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "Target path"},
        "limit": {"type": "integer", "default": 10},
        "ratio": {"anyOf": [{"type": "number"}, {"type": "null"}]},
        "kind": {"enum": ["model", "view"]},
        "files": {"type": "array", "items": {"type": "string"}},
        "meta": {"type": "object"},
        "anything": {},
    },
    "required": ["path", "kind"],
}


# ═════════════════════════════════════════════════════════════════════════════
# Pydantic Schemas
# ═════════════════════════════════════════════════════════════════════════════


def test_optional_number_is_not_required() -> None:
    meta = introspect(Params)["count"]
    assert meta.type_name == "number"
    assert meta.required is False


def test_pydantic_type_names() -> None:
    shape = get_shape(Params)
    assert get_field_type_name(shape["name"]) == "string"
    assert get_field_type_name(shape["retries"]) == "integer"
    assert get_field_type_name(shape["force"]) == "boolean"
    assert get_field_type_name(shape["tags"]) == "array"
    assert get_field_type_name(shape["framework"]) == "enum"
    assert get_field_type_name(shape["mode"]) == "enum"
    assert get_field_type_name(shape["options"]) == "object"
    assert get_field_type_name(shape["size"]) == "integer"


def test_required_and_defaults() -> None:
    meta = introspect(Params)
    assert meta["name"].required is True
    assert meta["name"].description == "Entity name"
    assert meta["retries"].required is False
    assert meta["retries"].has_default and meta["retries"].default_value == 3
    assert not meta["tags"].has_default


def test_enum_and_array_unwrapping() -> None:
    shape = get_shape(Params)
    assert get_enum_values(shape["framework"]) == ("react", "vue")
    assert get_enum_values(shape["mode"]) == ("fast", "safe")
    assert get_field_type_name(get_array_element_type(shape["tags"])) == "string"
    assert introspect(Params)["tags"].element_type == FieldMetadata(type_name="string")


def test_shape_keyed_by_alias() -> None:
    assert "displayName" in get_shape(Params)
    assert "display_name" not in get_shape(Params)


# ═════════════════════════════════════════════════════════════════════════════
# JSON Schemas
# ═════════════════════════════════════════════════════════════════════════════


def test_json_schema_fields() -> None:
    meta = introspect(JSON_PARAMS)
    assert list(meta) == ["path", "limit", "ratio", "kind", "files", "meta", "anything"]
    assert meta["path"].required and meta["path"].description == "Target path"
    assert meta["limit"].type_name == "integer" and meta["limit"].default_value == 10
    assert meta["ratio"].type_name == "number" and not meta["ratio"].required
    assert meta["kind"].type_name == "enum" and meta["kind"].enum_values == ("model", "view")
    assert meta["files"].element_type is not None and meta["files"].element_type.type_name == "string"
    assert meta["meta"].type_name == "object"
    assert meta["anything"].type_name == "unknown"


def test_required_follows_parent_list() -> None:
    shape = get_shape(JSON_PARAMS)
    assert is_field_required(shape["path"]) is True
    assert is_field_required(shape["limit"]) is False


# ═════════════════════════════════════════════════════════════════════════════
# Degradation
# ═════════════════════════════════════════════════════════════════════════════


def test_unreadable_schemas_never_raise() -> None:
    assert get_shape(None) == {}
    assert get_shape(42) == {}
    assert get_shape({"type": "string"}) == {}
    assert introspect(object()) == {}
    assert get_field_type_name(object()) == "unknown"
    assert is_field_required(object()) is False
    assert get_enum_values(None) is None
    assert get_array_element_type("nope") is None


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════


def test_pydantic_validation_collects_all_issues() -> None:
    result = validate_arguments(Params, {"count": "many", "retries": "x"})
    assert result.is_err()
    paths = {issue.path for issue in result.unwrap_err()}
    assert paths == {"name", "count", "retries"}


def test_pydantic_validation_returns_model() -> None:
    result = validate_arguments(Params, {"name": "users", "displayName": "Users"})
    model = result.unwrap()
    assert isinstance(model, Params)
    assert model.display_name == "Users"


def test_json_schema_validation_collects_all_issues() -> None:
    result = validate_arguments(JSON_PARAMS, {"limit": "ten"})
    messages = [issue.message for issue in result.unwrap_err()]
    assert len(messages) == 3
    assert any("'path' is a required property" in m for m in messages)
    assert any("'kind' is a required property" in m for m in messages)


def test_json_schema_validation_passes_dict_through() -> None:
    args = {"path": "src", "kind": "view"}
    assert validate_arguments(JSON_PARAMS, args).unwrap() == args


def test_non_object_arguments_rejected() -> None:
    assert validate_arguments(Params, ["a"]).is_err()


def test_unknown_schema_accepts_anything() -> None:
    assert validate_arguments(None, {"x": 1}).unwrap() == {"x": 1}
    assert validate_arguments(None, None).unwrap() == {}
