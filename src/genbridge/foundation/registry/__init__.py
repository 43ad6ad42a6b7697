"""Tool building and registration."""

from .builder import (
    CallToolResult,
    TextContent,
    Tool,
    ToolDefinition,
    ToolHandler,
    ToolInputSchema,
    build_definition,
    build_handler,
    build_input_schema,
    build_tool,
    field_to_property,
    to_call_result,
)
from .registry import ToolRegistry

__all__ = [
    "Tool", "ToolDefinition", "ToolInputSchema", "ToolHandler", "CallToolResult", "TextContent",
    "build_tool", "build_definition", "build_handler", "build_input_schema", "field_to_property",
    "to_call_result", "ToolRegistry",
]
