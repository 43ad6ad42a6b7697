"""Registry of built tools.

Definitions and handlers are stored together as Tool pairs, so their name sets
cannot drift apart. Building is tolerant: a generator whose tool cannot be
built is logged and left out, and the rest are still exposed.
"""

from __future__ import annotations

from collections.abc import Iterator

from genbridge.foundation.core import Generator, GeneratorSource, resolve_generators
from genbridge.foundation.errors import ErrorFactory
from genbridge.runtime.observability import get_logger

from .builder import Tool, ToolDefinition, ToolHandler, build_tool

log = get_logger("genbridge.registry")


class ToolRegistry:
    """Tools built from a generator source.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.initialize([api_generator, feature_generator])
        >>> registry.get_tool_info()
        [{'name': 'api', 'description': '...'}, {'name': 'feature', 'description': '...'}]
    """

    __slots__ = ("_tools", "_source", "_initialized")

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._source: GeneratorSource | None = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, source: GeneratorSource) -> None:
        """Build tools from ``source``. No-op when already initialized; use refresh() to rebuild."""
        if self._initialized:
            log.debug("registry already initialized")
            return
        self._source = source
        self._tools = self._build(resolve_generators(source))
        self._initialized = True
        log.info("tool registry initialized", tools=len(self._tools))

    def refresh(self) -> None:
        """Rebuild from the last source. If the source raises, the current tools stay in place."""
        if self._source is None:
            raise ErrorFactory.not_initialized("Tool registry")
        self._tools = self._build(resolve_generators(self._source))
        self._initialized = True
        log.info("tool registry refreshed", tools=len(self._tools))

    def _build(self, generators: list[Generator]) -> dict[str, Tool]:
        tools: dict[str, Tool] = {}
        for gen in generators:
            built = build_tool(gen)
            if built.is_err():
                err = built.unwrap_err()
                log.warning("skipping generator", generator=getattr(gen, "name", repr(gen)), error=err.message)
                continue
            tool = built.unwrap()
            if tool.name in tools:
                log.warning("duplicate generator name, keeping first", generator=tool.name)
                continue
            tools[tool.name] = tool
        return tools

    # ─────────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────────

    def _require(self) -> dict[str, Tool]:
        if not self._initialized:
            raise ErrorFactory.not_initialized("Tool registry")
        return self._tools

    def get_definitions(self) -> dict[str, ToolDefinition]:
        return {name: t.definition for name, t in self._require().items()}

    def get_handlers(self) -> dict[str, ToolHandler]:
        return {name: t.handler for name, t in self._require().items()}

    def get_tool_info(self) -> list[dict[str, str]]:
        """Name and description of each tool, for debugging and status output."""
        return [{"name": t.name, "description": t.definition.description} for t in self._require().values()]

    def get(self, name: str) -> Tool | None:
        return self._require().get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return (t.definition for t in self._tools.values())

    def __repr__(self) -> str:
        return f"ToolRegistry(initialized={self._initialized}, tools={list(self._tools)})"
