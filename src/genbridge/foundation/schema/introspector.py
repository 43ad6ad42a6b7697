"""Library-independent view of a generator's parameter schema.

A parameter schema is opaque to the rest of the system. This module reads it
through a translator chosen per schema kind and reports each field as a
FieldMetadata. Two kinds are understood:

- pydantic models (``type[BaseModel]``), read from ``model_fields``
- JSON-Schema dictionaries ``{"type": "object", "properties": ..., "required": [...]}``

Introspection never raises. A schema or field that cannot be read degrades to
an empty shape or the ``unknown`` type, so a tool is still built with an open
input schema instead of being dropped.

Example:
    >>> class Params(BaseModel):
    ...     name: str
    ...     count: float | None = None
    >>> meta = introspect(Params)
    >>> meta["count"].type_name, meta["count"].required
    ('number', False)
"""

from __future__ import annotations

import enum
import types
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from pathlib import PurePath
from typing import Annotated, Any, Literal, Protocol, Union, get_args, get_origin

import jsonschema
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined

from genbridge.foundation.errors import Err, Ok, Result, ValidationIssue
from genbridge.runtime.observability import get_logger

log = get_logger("genbridge.schema")

TypeName = Literal["string", "number", "integer", "boolean", "array", "enum", "object", "unknown"]


class FieldMetadata(BaseModel):
    """Type and constraints of one schema field, independent of the validation library."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type_name: TypeName = "unknown"
    required: bool = True
    description: str | None = None
    enum_values: tuple[str, ...] | None = None
    element_type: FieldMetadata | None = None
    has_default: bool = False
    default_value: Any = Field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class JsonSchemaField:
    """A property of a JSON-Schema object plus whether the parent lists it as required."""

    schema: Mapping[str, Any]
    required: bool = True


# ─────────────────────────────────────────────────────────────────────────────
# Translators
# ─────────────────────────────────────────────────────────────────────────────


class SchemaTranslator(Protocol):
    """Reads one kind of schema. Methods may raise; the public functions guard them."""

    def accepts(self, schema: object) -> bool: ...
    def accepts_field(self, field: object) -> bool: ...
    def shape(self, schema: object) -> dict[str, object]: ...
    def is_required(self, field: object) -> bool: ...
    def type_name(self, field: object) -> TypeName: ...
    def element(self, field: object) -> object | None: ...
    def enum_values(self, field: object) -> tuple[str, ...] | None: ...
    def description(self, field: object) -> str | None: ...
    def default(self, field: object) -> tuple[bool, Any]: ...


_NONE_TYPES = (type(None), None)


def _unwrap_annotation(tp: Any) -> Any:
    """Strip Annotated and Optional layers. A union of several real types stays as is."""
    while True:
        origin = get_origin(tp)
        if origin is Annotated:
            tp = get_args(tp)[0]
        elif origin in (Union, types.UnionType):
            members = [a for a in get_args(tp) if a not in _NONE_TYPES]
            if len(members) != 1:
                return tp
            tp = members[0]
        else:
            return tp


def _is_subclass(tp: Any, parent: type) -> bool:
    return isinstance(tp, type) and issubclass(tp, parent)


class PydanticTranslator:
    """Fields are FieldInfo objects; array elements are bare annotations."""

    __slots__ = ()

    def accepts(self, schema: object) -> bool:
        return _is_subclass(schema, BaseModel)

    def accepts_field(self, field: object) -> bool:
        return isinstance(field, FieldInfo) or get_origin(field) is not None or isinstance(field, type)

    def shape(self, schema: object) -> dict[str, object]:
        # Keyed by alias: that is the name model_validate() expects on input
        return {f.alias or name: f for name, f in schema.model_fields.items()}  # type: ignore[attr-defined]

    def _annotation(self, field: object) -> Any:
        return _unwrap_annotation(field.annotation if isinstance(field, FieldInfo) else field)

    def is_required(self, field: object) -> bool:
        return field.is_required() if isinstance(field, FieldInfo) else True

    def type_name(self, field: object) -> TypeName:
        tp = self._annotation(field)
        origin = get_origin(tp)
        if origin is Literal or _is_subclass(tp, enum.Enum):
            return "enum"
        if origin in (list, tuple, set, frozenset, Sequence) or tp in (list, tuple, set, frozenset):
            return "array"
        if origin in (dict, Mapping) or tp in (dict, Mapping) or _is_subclass(tp, BaseModel):
            return "object"
        # bool is an int subclass, so it must be tested first
        if _is_subclass(tp, bool):
            return "boolean"
        if _is_subclass(tp, int):
            return "integer"
        if _is_subclass(tp, (float, Decimal)):
            return "number"
        if _is_subclass(tp, (str, PurePath)):
            return "string"
        return "unknown"

    def element(self, field: object) -> object | None:
        if self.type_name(field) != "array":
            return None
        args = [a for a in get_args(self._annotation(field)) if a is not Ellipsis]
        return args[0] if args else None

    def enum_values(self, field: object) -> tuple[str, ...] | None:
        tp = self._annotation(field)
        if get_origin(tp) is Literal:
            return tuple(str(v) for v in get_args(tp))
        if _is_subclass(tp, enum.Enum):
            return tuple(str(m.value) for m in tp)
        return None

    def description(self, field: object) -> str | None:
        return field.description if isinstance(field, FieldInfo) else None

    def default(self, field: object) -> tuple[bool, Any]:
        if not isinstance(field, FieldInfo) or field.default is PydanticUndefined:
            return False, None
        return True, field.default


_JSON_TYPE_NAMES: dict[str, TypeName] = {
    "string": "string", "number": "number", "integer": "integer",
    "boolean": "boolean", "array": "array", "object": "object",
}


class JsonSchemaTranslator:
    """Fields are JsonSchemaField wrappers around property sub-schemas."""

    __slots__ = ()

    def accepts(self, schema: object) -> bool:
        return isinstance(schema, Mapping) and (schema.get("type") == "object" or "properties" in schema)

    def accepts_field(self, field: object) -> bool:
        return isinstance(field, JsonSchemaField)

    def shape(self, schema: object) -> dict[str, object]:
        props = schema.get("properties") or {}  # type: ignore[attr-defined]
        required = set(schema.get("required") or ())  # type: ignore[attr-defined]
        return {name: JsonSchemaField(sub if isinstance(sub, Mapping) else {}, name in required)
                for name, sub in props.items()}

    def _resolve(self, field: object) -> Mapping[str, Any]:
        """Unwrap a nullable ``anyOf``/``oneOf`` with a single real branch."""
        sub = field.schema  # type: ignore[attr-defined]
        for key in ("anyOf", "oneOf"):
            if isinstance(branches := sub.get(key), list):
                real = [b for b in branches if isinstance(b, Mapping) and b.get("type") != "null"]
                if len(real) == 1:
                    return {**real[0], **{k: v for k, v in sub.items() if k != key}}
        return sub

    def is_required(self, field: object) -> bool:
        return field.required  # type: ignore[attr-defined]

    def type_name(self, field: object) -> TypeName:
        sub = self._resolve(field)
        if isinstance(sub.get("enum"), list):
            return "enum"
        declared = sub.get("type")
        if isinstance(declared, list):
            real = [t for t in declared if t != "null"]
            declared = real[0] if len(real) == 1 else None
        return _JSON_TYPE_NAMES.get(declared, "unknown") if isinstance(declared, str) else "unknown"

    def element(self, field: object) -> object | None:
        items = self._resolve(field).get("items")
        return JsonSchemaField(items) if isinstance(items, Mapping) else None

    def enum_values(self, field: object) -> tuple[str, ...] | None:
        values = self._resolve(field).get("enum")
        return tuple(str(v) for v in values) if isinstance(values, list) else None

    def description(self, field: object) -> str | None:
        desc = self._resolve(field).get("description")
        return desc if isinstance(desc, str) else None

    def default(self, field: object) -> tuple[bool, Any]:
        sub = self._resolve(field)
        return ("default" in sub), sub.get("default")


_TRANSLATORS: tuple[SchemaTranslator, ...] = (PydanticTranslator(), JsonSchemaTranslator())


def _for_schema(schema: object) -> SchemaTranslator | None:
    return next((t for t in _TRANSLATORS if t.accepts(schema)), None)


def _for_field(field: object) -> SchemaTranslator | None:
    # JSON-Schema fields are the more specific match
    return next((t for t in reversed(_TRANSLATORS) if t.accepts_field(field)), None)


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def supports_schema(schema: object) -> bool:
    """True when some translator can read ``schema``, even if it has no fields."""
    return _for_schema(schema) is not None


def get_shape(schema: object) -> dict[str, object]:
    """Field name to field schema. Empty when the schema is not object-shaped."""
    if (t := _for_schema(schema)) is None:
        return {}
    try:
        return t.shape(schema)
    except Exception as e:
        log.debug("schema shape unreadable", error=str(e))
        return {}


def is_field_required(field: object) -> bool:
    """False when the field is optional (has a default or is not listed as required)."""
    if (t := _for_field(field)) is None:
        return False
    try:
        return t.is_required(field)
    except Exception:
        return False


def get_field_type_name(field: object) -> TypeName:
    """Canonical type name after unwrapping optional and default wrappers."""
    if (t := _for_field(field)) is None:
        return "unknown"
    try:
        return t.type_name(field)
    except Exception:
        return "unknown"


def get_array_element_type(field: object) -> object | None:
    """Element schema of an array field, or None."""
    if (t := _for_field(field)) is None:
        return None
    try:
        return t.element(field)
    except Exception:
        return None


def get_enum_values(field: object) -> tuple[str, ...] | None:
    """Allowed values of an enum field as strings, or None."""
    if (t := _for_field(field)) is None:
        return None
    try:
        return t.enum_values(field)
    except Exception:
        return None


def get_field_metadata(field: object) -> FieldMetadata:
    """Full FieldMetadata for one field. Unreadable fields come back as ``unknown``."""
    if (t := _for_field(field)) is None:
        return FieldMetadata()
    try:
        type_name = t.type_name(field)
        element = t.element(field) if type_name == "array" else None
        has_default, default = t.default(field)
        return FieldMetadata(
            type_name=type_name,
            required=t.is_required(field),
            description=t.description(field),
            enum_values=t.enum_values(field) if type_name == "enum" else None,
            element_type=get_field_metadata(element) if element is not None else None,
            has_default=has_default,
            default_value=default,
        )
    except Exception as e:
        log.debug("field metadata unreadable", error=str(e))
        return FieldMetadata()


def introspect(schema: object) -> dict[str, FieldMetadata]:
    """FieldMetadata for every field of ``schema``, in declaration order."""
    return {name: get_field_metadata(field) for name, field in get_shape(schema).items()}


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────


def _dotted(path: Sequence[object]) -> str:
    return ".".join(str(p) for p in path)


def validate_arguments(schema: object, arguments: object) -> Result[Any, list[ValidationIssue]]:
    """Check ``arguments`` against the full schema, collecting every violation.

    Returns the validated value (a model instance for pydantic schemas, the
    argument dict otherwise) or the list of issues. A schema with no readable
    shape accepts any object.
    """
    args = {} if arguments is None else arguments
    if not isinstance(args, Mapping):
        return Err([ValidationIssue(message=f"Expected an object, got {type(args).__name__}")])

    if _is_subclass(schema, BaseModel):
        try:
            return Ok(schema.model_validate(dict(args)))  # type: ignore[attr-defined]
        except PydanticValidationError as e:
            return Err([ValidationIssue(path=_dotted(err["loc"]), message=err["msg"]) for err in e.errors()])

    if isinstance(schema, Mapping):
        try:
            validator_cls = jsonschema.validators.validator_for(schema, default=jsonschema.Draft202012Validator)
            errors = sorted(validator_cls(schema).iter_errors(dict(args)), key=lambda e: list(map(str, e.absolute_path)))
        except jsonschema.SchemaError as e:
            return Err([ValidationIssue(message=f"Invalid parameter schema: {e.message}")])
        if errors:
            return Err([ValidationIssue(path=_dotted(e.absolute_path), message=e.message) for e in errors])
        return Ok(dict(args))

    return Ok(dict(args))
