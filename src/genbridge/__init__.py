"""genbridge - Expose project code generators as remotely invocable tools.

Generators are described by a name, a description and a parameter schema
(a pydantic model or a JSON-Schema dict). genbridge derives tool definitions
from those schemas, validates every call, backs up files before mutating them,
and serves the result as JSON-RPC over stdio.

Quick Start (Decorator):
    >>> from genbridge import generator
    >>>
    >>> @generator(name="feature")
    ... def create_feature(path: str, force: bool = False) -> str:
    ...     '''Scaffold a feature directory.
    ...
    ...     Args:
    ...         path: Feature path relative to the project root
    ...         force: Overwrite existing files
    ...     '''
    ...     return f"created {path}"

Serving Over Stdio:
    >>> from genbridge import ProtocolServer, ServerContext
    >>>
    >>> ctx = ServerContext.create()
    >>> server = ProtocolServer(ctx, generators=lambda: ctx.generators([create_feature]))
    >>> asyncio.run(server.serve_forever())

Published Generators:
    Distributions can expose generators under the ``genbridge.generators``
    entry point group; ``ServerContext.generators()`` picks them up.

Command Line:
    $ genbridge start            # serve until end of input or SIGTERM
    $ genbridge status --json
    $ genbridge stop
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from .foundation.errors import (
    AppError,
    ConfigurationError,
    Err,
    ErrorCode,
    ErrorContext,
    FileSystemError,
    GenerationError,
    InternalError,
    Ok,
    PermissionDeniedError,
    ProtocolError,
    ResourceNotFoundError,
    Result,
    ValidationError,
    normalize,
)

# Generators & Registry
from .foundation.core import FunctionGenerator, Generator, generator
from .foundation.registry import CallToolResult, ToolDefinition, ToolRegistry

# Schema
from .foundation.schema import FieldMetadata, introspect, validate_arguments

# Config & Context
from .foundation.config import ConfigurationManager, ServerSettings
from .foundation.context import ServerContext

# Backups
from .io.backup import BackupManager

# Server
from .ext.mcp import MemoryTransport, ProtocolServer, ServerPhase, StdioTransport, Transport

# Observability
from .runtime.observability import configure_logging, get_logger

__all__ = [
    "__version__",
    # Errors
    "ErrorCode", "ProtocolError", "AppError", "ValidationError", "FileSystemError", "GenerationError",
    "ConfigurationError", "ResourceNotFoundError", "PermissionDeniedError", "InternalError",
    "ErrorContext", "normalize", "Result", "Ok", "Err",
    # Generators & Registry
    "Generator", "FunctionGenerator", "generator", "ToolRegistry", "ToolDefinition", "CallToolResult",
    # Schema
    "FieldMetadata", "introspect", "validate_arguments",
    # Config & Context
    "ConfigurationManager", "ServerSettings", "ServerContext",
    # Backups
    "BackupManager",
    # Server
    "ProtocolServer", "ServerPhase", "Transport", "StdioTransport", "MemoryTransport",
    # Observability
    "configure_logging", "get_logger",
]
