"""The Generator contract and a decorator for defining generators from functions.

A generator is anything with ``name``, ``description``, ``parameter_schema``
and ``execute(args)``. The bridge never looks further inside it.

Example:
    >>> @generator(name="feature")
    ... def create_feature(path: str, force: bool = False) -> str:
    ...     '''Scaffold a feature directory.
    ...
    ...     Args:
    ...         path: Feature path relative to the project root
    ...         force: Overwrite existing files
    ...     '''
    ...     return f"created {path}"
    >>> create_feature.name, sorted(create_feature.parameter_schema.model_fields)
    ('feature', ['force', 'path'])
"""

from __future__ import annotations

import asyncio
import inspect
import re
from collections.abc import Callable, Iterable
from importlib.metadata import entry_points
from typing import Any, Protocol, get_type_hints, overload, runtime_checkable

from pydantic import BaseModel, Field, create_model

from genbridge.runtime.observability import get_logger

log = get_logger("genbridge.generators")

ENTRY_POINT_GROUP = "genbridge.generators"


@runtime_checkable
class Generator(Protocol):
    """Parameter-validated operation exposed as a tool.

    ``parameter_schema`` is a pydantic model class or a JSON-Schema dict.
    ``execute`` receives the validated arguments (a model instance or a dict)
    and may be sync or async. It may return a plain value, a Result, or raise.
    """

    name: str
    description: str
    parameter_schema: Any

    def execute(self, args: Any) -> Any: ...


GeneratorSource = Iterable[Generator] | Callable[[], Iterable[Generator]]


def resolve_generators(source: GeneratorSource) -> list[Generator]:
    """Materialize a source into a list. Callables are invoked once per call."""
    return list(source() if callable(source) else source)


# ─────────────────────────────────────────────────────────────────────────────
# Docstring Parsing
# ─────────────────────────────────────────────────────────────────────────────

_PARAM_PATTERN = re.compile(
    r"^\s*(?P<name>\w+)\s*(?:\([^)]*\))?\s*:\s*(?P<desc>.+?)(?=\n\s*\w+\s*(?:\([^)]*\))?\s*:|$)",
    re.MULTILINE | re.DOTALL,
)


def _parse_docstring_params(docstring: str | None) -> dict[str, str]:
    """Parameter descriptions from a Google-style ``Args:`` section."""
    if not docstring:
        return {}
    sections = re.split(r"\n\s*(?:Args|Arguments|Parameters)\s*:\s*\n", docstring, flags=re.IGNORECASE)
    if len(sections) < 2:
        return {}
    args_section = re.split(r"\n\s*(?:Returns|Raises|Examples?|Notes?|Yields)\s*:", sections[1], flags=re.IGNORECASE)[0]
    return {m.group("name"): " ".join(m.group("desc").split()) for m in _PARAM_PATTERN.finditer(args_section)}


def _summary(docstring: str | None) -> str:
    """First paragraph of a docstring, whitespace-collapsed."""
    if not docstring:
        return ""
    return " ".join(inspect.cleandoc(docstring).split("\n\n", 1)[0].split())


def _generate_schema(func: Callable[..., Any], model_name: str) -> type[BaseModel]:
    """Pydantic model from a function signature. Unannotated parameters are strings."""
    sig = inspect.signature(func)
    hints = get_type_hints(func, include_extras=True)
    docs = _parse_docstring_params(func.__doc__)
    fields: dict[str, tuple[Any, Any]] = {}
    for name, param in sig.parameters.items():
        if name in ("self", "cls") or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        description = docs.get(name)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[name] = (hints.get(name, str), Field(default, description=description))
    return create_model(model_name, **fields)  # type: ignore[call-overload]


# ─────────────────────────────────────────────────────────────────────────────
# FunctionGenerator
# ─────────────────────────────────────────────────────────────────────────────


class FunctionGenerator:
    """Generator backed by a plain or async function.

    Sync functions run in a worker thread so file I/O does not block the loop.
    """

    __slots__ = ("name", "description", "parameter_schema", "_func", "_is_async")

    def __init__(
        self,
        func: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        parameter_schema: Any = None,
    ) -> None:
        self._func = func
        self._is_async = inspect.iscoroutinefunction(func)
        self.name = name or func.__name__
        self.description = description or _summary(func.__doc__) or f"Run generator '{self.name}'"
        self.parameter_schema = parameter_schema or _generate_schema(func, f"{_camel(self.name)}Params")

    async def execute(self, args: Any) -> Any:
        kwargs = dict(args) if not isinstance(args, BaseModel) else {k: getattr(args, k) for k in type(args).model_fields}
        if self._is_async:
            return await self._func(**kwargs)
        return await asyncio.to_thread(self._func, **kwargs)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._func(*args, **kwargs)

    def __repr__(self) -> str:
        return f"FunctionGenerator(name={self.name!r})"


def _camel(name: str) -> str:
    return "".join(p.capitalize() for p in re.split(r"[^0-9a-zA-Z]+", name) if p) or "Generator"


@overload
def generator(func: Callable[..., Any], /) -> FunctionGenerator: ...
@overload
def generator(
    *, name: str | None = None, description: str | None = None, parameter_schema: Any = None,
) -> Callable[[Callable[..., Any]], FunctionGenerator]: ...


def generator(
    func: Callable[..., Any] | None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    parameter_schema: Any = None,
) -> FunctionGenerator | Callable[[Callable[..., Any]], FunctionGenerator]:
    """Turn a function into a Generator. Usable bare (``@generator``) or with options."""
    def wrap(f: Callable[..., Any]) -> FunctionGenerator:
        return FunctionGenerator(f, name=name, description=description, parameter_schema=parameter_schema)
    return wrap(func) if func is not None else wrap


# ─────────────────────────────────────────────────────────────────────────────
# Discovery
# ─────────────────────────────────────────────────────────────────────────────


def load_entry_point_generators(group: str = ENTRY_POINT_GROUP) -> list[Generator]:
    """Generators published by installed distributions under ``group``.

    An entry point may name a Generator, or a callable returning an iterable of
    them. Entry points that fail to load are logged and skipped.
    """
    found: list[Generator] = []
    for ep in entry_points(group=group):
        try:
            obj = ep.load()
            items = [obj] if isinstance(obj, Generator) else list(obj())
        except Exception as e:
            log.warning("generator entry point failed to load", entry_point=ep.name, error=str(e))
            continue
        found.extend(g for g in items if isinstance(g, Generator))
    return found
