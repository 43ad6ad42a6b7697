"""Error taxonomy for genbridge.

- ErrorCode: numeric wire codes (JSON-RPC range plus application range)
- ProtocolError/AppError and the domain errors raised by components
- normalize(): single funnel from any raised value to a wire error
- Result/Ok/Err: success-or-failure values returned across boundaries
- ErrorContext: per-call correlation data attached to errors
"""

from .codes import ErrorCode
from .errors import (
    AppError,
    ConfigurationError,
    ErrorFactory,
    FileSystemError,
    GenerationError,
    InternalError,
    PermissionDeniedError,
    ProtocolError,
    ResourceNotFoundError,
    ValidationError,
    ValidationIssue,
    normalize,
)
from .result import Err, Ok, Result
from .types import ErrorContext, JsonDict, JsonPrimitive, JsonValue, create_error_context, generate_request_id

__all__ = [
    # Codes
    "ErrorCode",
    # Errors
    "ProtocolError", "AppError", "ValidationError", "ValidationIssue", "FileSystemError",
    "GenerationError", "ConfigurationError", "ResourceNotFoundError", "PermissionDeniedError",
    "InternalError", "ErrorFactory", "normalize",
    # Result
    "Result", "Ok", "Err",
    # Context
    "ErrorContext", "create_error_context", "generate_request_id",
    "JsonDict", "JsonPrimitive", "JsonValue",
]
