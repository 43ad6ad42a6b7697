"""Tests for tool definition and handler construction."""

from __future__ import annotations

from typing import Any

import orjson
import pytest
from pydantic import BaseModel, Field

from genbridge.foundation.core import FunctionGenerator
from genbridge.foundation.errors import Err, GenerationError, Ok
from genbridge.foundation.registry import (
    CallToolResult,
    build_definition,
    build_input_schema,
    build_tool,
    to_call_result,
)
from genbridge.runtime.observability import MemoryRenderer


class ModelParams(BaseModel):
    entity: str = Field(description="Entity name")
    columns: list[str] = Field(default_factory=list)
    kind: str = "crud"


class StubGenerator:
    """Minimal object satisfying the Generator protocol."""

    def __init__(self, name: str, schema: Any = ModelParams, result: Any = None, error: Exception | None = None) -> None:
        self.name = name
        self.description = f"{name} generator"
        self.parameter_schema = schema
        self._result, self._error = result, error
        self.calls: list[Any] = []

    def execute(self, args: Any) -> Any:
        self.calls.append(args)
        if self._error is not None:
            raise self._error
        return self._result


# ═════════════════════════════════════════════════════════════════════════════
# Definitions
# ═════════════════════════════════════════════════════════════════════════════


def test_definition_from_pydantic_model() -> None:
    wire = build_definition(StubGenerator("crud")).to_wire()
    assert wire["name"] == "crud"
    assert wire["description"] == "crud generator"
    schema = wire["inputSchema"]
    assert schema["type"] == "object"
    assert schema["required"] == ["entity"]
    assert schema["properties"]["entity"] == {"type": "string", "description": "Entity name"}
    assert schema["properties"]["columns"] == {"type": "array", "items": {"type": "string"}}
    assert schema["properties"]["kind"] == {"type": "string", "default": "crud"}


def test_definition_from_json_schema() -> None:
    schema = build_input_schema({
        "type": "object",
        "properties": {"mode": {"enum": ["a", "b"]}, "blob": {}},
    }).model_dump(exclude_none=True)
    assert schema["properties"]["mode"] == {"type": "string", "enum": ["a", "b"]}
    assert schema["properties"]["blob"] == {}
    assert "required" not in schema


def test_unreadable_schema_degrades_to_open_object() -> None:
    schema = build_input_schema(object()).model_dump(exclude_none=True)
    assert schema == {"type": "object", "properties": {}, "additionalProperties": True}


def test_rebuilding_is_idempotent() -> None:
    gen = StubGenerator("crud")
    assert build_definition(gen) == build_definition(gen)


def test_build_tool_rejects_nameless_generator() -> None:
    assert build_tool(StubGenerator("")).is_err()


def test_function_generator_schema_from_signature(feature_generator: FunctionGenerator) -> None:
    wire = build_definition(feature_generator).to_wire()
    assert wire["description"] == "Scaffold a feature directory."
    props = wire["inputSchema"]["properties"]
    assert props["path"] == {"type": "string", "description": "Feature path relative to the project root"}
    assert props["force"]["type"] == "boolean"
    assert wire["inputSchema"]["required"] == ["path"]


# ═════════════════════════════════════════════════════════════════════════════
# Handlers
# ═════════════════════════════════════════════════════════════════════════════


class TestHandler:
    @pytest.mark.asyncio
    async def test_success_renders_json(self) -> None:
        gen = StubGenerator("crud", result={"created": ["a.ts", "b.ts"]})
        tool = build_tool(gen).unwrap()
        result = (await tool.handler({"entity": "User"})).unwrap()
        assert result.is_error is False
        assert orjson.loads(result.content[0].text) == {"created": ["a.ts", "b.ts"]}
        assert isinstance(gen.calls[0], ModelParams)

    @pytest.mark.asyncio
    async def test_validation_collects_every_violation(self) -> None:
        gen = StubGenerator("crud")
        tool = build_tool(gen).unwrap()
        error = (await tool.handler({"columns": "notalist"})).unwrap_err()
        assert error.code == -1006
        assert len(error.issues) == 2
        assert gen.calls == []

    @pytest.mark.asyncio
    async def test_raised_error_is_normalized_with_tool_name(self) -> None:
        tool = build_tool(StubGenerator("crud", error=RuntimeError("template exploded"))).unwrap()
        error = (await tool.handler({"entity": "User"}, request_id="req_1_abc")).unwrap_err()
        assert error.code == -32603
        assert error.message == "template exploded"
        assert error.context.tool == "crud"
        assert error.context.request_id == "req_1_abc"

    @pytest.mark.asyncio
    async def test_typed_error_keeps_its_code(self) -> None:
        tool = build_tool(StubGenerator("crud", error=GenerationError("crud", "no template"))).unwrap()
        error = (await tool.handler({"entity": "User"})).unwrap_err()
        assert error.code == -1003

    @pytest.mark.asyncio
    async def test_err_result_is_unwrapped(self) -> None:
        tool = build_tool(StubGenerator("crud", result=Err(ValueError("nope")))).unwrap()
        error = (await tool.handler({"entity": "User"})).unwrap_err()
        assert error.message == "nope"

    @pytest.mark.asyncio
    async def test_ok_result_is_unwrapped(self) -> None:
        tool = build_tool(StubGenerator("crud", result=Ok("done"))).unwrap()
        assert (await tool.handler({"entity": "User"})).unwrap().content[0].text == "done"

    @pytest.mark.asyncio
    async def test_async_function_generator(self, api_generator: FunctionGenerator) -> None:
        tool = build_tool(api_generator).unwrap()
        result = (await tool.handler({"name": "users", "auth": True})).unwrap()
        assert orjson.loads(result.content[0].text) == {"created": "src/api/users.ts", "methods": ["GET"], "auth": True}

    @pytest.mark.asyncio
    async def test_sync_function_generator(self, feature_generator: FunctionGenerator) -> None:
        tool = build_tool(feature_generator).unwrap()
        assert (await tool.handler({"path": "auth"})).unwrap().content[0].text == "created auth"

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, logs: MemoryRenderer) -> None:
        tool = build_tool(StubGenerator("crud", error=RuntimeError("boom"))).unwrap()
        await tool.handler({"entity": "User"})
        assert "generator failed" in logs.events("warn")


# ═════════════════════════════════════════════════════════════════════════════
# Result Rendering
# ═════════════════════════════════════════════════════════════════════════════


def test_none_becomes_success_message() -> None:
    text = to_call_result("feature", None).content[0].text
    assert orjson.loads(text) == {"success": True, "message": "Successfully executed generator 'feature'"}


def test_string_passes_through() -> None:
    assert to_call_result("x", "plain").to_wire() == {
        "content": [{"type": "text", "text": "plain"}], "isError": False}


def test_ready_result_passes_through() -> None:
    ready = CallToolResult.text("custom")
    assert to_call_result("x", ready) is ready


def test_model_rendered_by_alias() -> None:
    class Out(BaseModel):
        file_path: str = Field(alias="filePath")
        note: str | None = None

    text = to_call_result("x", Out(filePath="a.ts")).content[0].text
    assert orjson.loads(text) == {"filePath": "a.ts"}
