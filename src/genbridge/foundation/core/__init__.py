"""Generator contract and function-based generator definition."""

from .generator import (
    ENTRY_POINT_GROUP,
    FunctionGenerator,
    Generator,
    GeneratorSource,
    generator,
    load_entry_point_generators,
    resolve_generators,
)

__all__ = [
    "Generator", "GeneratorSource", "FunctionGenerator", "generator",
    "resolve_generators", "load_entry_point_generators", "ENTRY_POINT_GROUP",
]
