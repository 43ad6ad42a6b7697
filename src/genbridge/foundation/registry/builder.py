"""Turn a Generator into a protocol tool: a definition plus a validating handler.

The definition is derived from the generator's parameter schema through the
introspector, so it never depends on which validation library the schema was
written with. The handler validates the call arguments against the full
schema, runs the generator, and folds every outcome into a Result.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field

from genbridge.foundation.core import Generator
from genbridge.foundation.errors import (
    Err,
    ErrorContext,
    JsonDict,
    Ok,
    ProtocolError,
    Result,
    ValidationError,
    create_error_context,
    normalize,
)
from genbridge.foundation.schema import FieldMetadata, introspect, supports_schema, validate_arguments
from genbridge.runtime.observability import get_logger

log = get_logger("genbridge.builder")


# ─────────────────────────────────────────────────────────────────────────────
# Wire Models
# ─────────────────────────────────────────────────────────────────────────────


class ToolInputSchema(BaseModel):
    """JSON Schema of a tool's arguments. Extra keys (``additionalProperties``) pass through."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: Literal["object"] = "object"
    properties: dict[str, JsonDict] = Field(default_factory=dict)
    required: list[str] | None = None


class ToolDefinition(BaseModel):
    """What a client sees in ``tools/list``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    description: str = ""
    input_schema: ToolInputSchema = Field(alias="inputSchema")

    def to_wire(self) -> JsonDict:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class CallToolResult(BaseModel):
    """Successful ``tools/call`` payload."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def text(cls, text: str) -> CallToolResult:
        return cls(content=[TextContent(text=text)])

    def to_wire(self) -> JsonDict:
        return self.model_dump(by_alias=True)


ToolHandler = Callable[..., Awaitable[Result[CallToolResult, ProtocolError]]]


@dataclass(frozen=True, slots=True)
class Tool:
    """A built tool. The handler is bound to one generator and lives in-process only."""

    definition: ToolDefinition
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.definition.name


# ─────────────────────────────────────────────────────────────────────────────
# Definition
# ─────────────────────────────────────────────────────────────────────────────

_NO_DEFAULT = object()


def _json_default(value: Any) -> Any:
    """JSON-compatible form of a default, or _NO_DEFAULT when it has none."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    try:
        return orjson.loads(orjson.dumps(value))
    except TypeError:
        return _NO_DEFAULT


def field_to_property(meta: FieldMetadata) -> JsonDict:
    """JSON-Schema property for one field. ``unknown`` types become an open property."""
    match meta.type_name:
        case "enum":
            prop: JsonDict = {"type": "string", "enum": list(meta.enum_values or ())}
        case "array":
            prop = {"type": "array",
                    "items": field_to_property(meta.element_type) if meta.element_type else {"type": "string"}}
        case "unknown":
            prop = {}
        case other:
            prop = {"type": other}
    if meta.description:
        prop["description"] = meta.description
    if meta.has_default and (default := _json_default(meta.default_value)) is not _NO_DEFAULT:
        prop["default"] = default
    return prop


def build_input_schema(schema: object) -> ToolInputSchema:
    """Object schema for a generator's parameters. Unreadable schemas accept anything."""
    if not supports_schema(schema):
        return ToolInputSchema(properties={}, additionalProperties=True)
    fields = introspect(schema)
    required = [name for name, meta in fields.items() if meta.required]
    return ToolInputSchema(
        properties={name: field_to_property(meta) for name, meta in fields.items()},
        required=required or None,
    )


def build_definition(generator: Generator) -> ToolDefinition:
    return ToolDefinition(
        name=generator.name,
        description=generator.description or "",
        input_schema=build_input_schema(generator.parameter_schema),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Handler
# ─────────────────────────────────────────────────────────────────────────────


def to_call_result(name: str, value: Any) -> CallToolResult:
    """Render a generator's return value as text content."""
    match value:
        case CallToolResult():
            return value
        case None:
            return CallToolResult.text(orjson.dumps(
                {"success": True, "message": f"Successfully executed generator '{name}'"}).decode())
        case str():
            return CallToolResult.text(value)
        case BaseModel():
            return CallToolResult.text(value.model_dump_json(indent=2, by_alias=True, exclude_none=True))
        case _:
            return CallToolResult.text(orjson.dumps(value, default=str, option=orjson.OPT_INDENT_2).decode())


def build_handler(generator: Generator) -> ToolHandler:
    """Async handler: validate, execute, normalize. Never raises for generator failures."""
    name, schema = generator.name, generator.parameter_schema

    async def handler(arguments: Any = None, *, request_id: str | None = None) -> Result[CallToolResult, ProtocolError]:
        ctx: ErrorContext = create_error_context(
            tool=name, operation="tools/call",
            parameters=dict(arguments) if isinstance(arguments, dict) else None,
            request_id=request_id,
        )
        validated = validate_arguments(schema, arguments)
        if validated.is_err():
            log.debug("arguments rejected", tool=name, issues=len(validated.unwrap_err()))
            return validated.map_err(lambda issues: ValidationError.from_issues(issues, context=ctx))
        try:
            outcome = generator.execute(validated.unwrap())
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            log.warning("generator failed", tool=name, error=str(e), request_id=ctx.request_id)
            return Err(normalize(e, ctx))
        if isinstance(outcome, Result):
            return outcome.map_err(lambda e: normalize(e, ctx)).map(lambda value: to_call_result(name, value))
        return Ok(to_call_result(name, outcome))

    handler.__name__ = name
    handler.__doc__ = generator.description
    return handler


def build_tool(generator: Generator) -> Result[Tool, ProtocolError]:
    """Definition and handler for one generator, or the reason it cannot be exposed."""
    name = getattr(generator, "name", None)
    if not isinstance(name, str) or not name:
        return Err(ValidationError.for_field("generator.name", name, "non-empty string"))
    if not callable(getattr(generator, "execute", None)):
        return Err(ValidationError.for_field(f"{name}.execute", None, "callable"))
    try:
        return Ok(Tool(build_definition(generator), build_handler(generator)))
    except Exception as e:
        return Err(normalize(e, create_error_context(tool=name, operation="build tool")))
