"""Typed errors and their normalization to wire error objects.

Every failure that can reach a client is a ProtocolError carrying a numeric
code from ErrorCode. Domain failures subclass AppError, which adds an optional
ErrorContext for correlation. normalize() is the single funnel that turns any
raised value into a ProtocolError at the outermost boundary.
"""

from __future__ import annotations

import traceback
from collections.abc import Sequence
from typing import Self

import orjson
from pydantic import BaseModel, ConfigDict

from .codes import ErrorCode
from .types import ErrorContext, JsonDict


class ValidationIssue(BaseModel):
    """One violated constraint. ``path`` is dotted (``items.0.name``), empty for the root."""

    model_config = ConfigDict(frozen=True)

    path: str = ""
    message: str

    def __str__(self) -> str:
        return f"{self.message} ({self.path})" if self.path else self.message


# ─────────────────────────────────────────────────────────────────────────────
# Base Errors
# ─────────────────────────────────────────────────────────────────────────────


class ProtocolError(Exception):
    """Wire-level error: ``{code, message, data?}``."""

    def __init__(self, code: ErrorCode | int, message: str, data: JsonDict | None = None) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message
        self.data = data

    def to_wire(self) -> JsonDict:
        """Render as a JSON-RPC error object."""
        wire: JsonDict = {"code": int(self.code), "message": self.message}
        if self.data:
            wire["data"] = self.data
        return wire

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={int(self.code)}, message={self.message!r})"


class AppError(ProtocolError):
    """Domain error with an optional ErrorContext attached."""

    def __init__(
        self,
        code: ErrorCode | int,
        message: str,
        data: JsonDict | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(code, message, data)
        self.context = context

    def with_context(self, context: ErrorContext) -> Self:
        """Attach ``context`` unless one is already present. Returns self."""
        if self.context is None:
            self.context = context
        return self

    def to_wire(self) -> JsonDict:
        wire = super().to_wire()
        if self.context is not None:
            wire["data"] = {**(self.data or {}), "context": self.context.to_wire()}
        return wire


# ─────────────────────────────────────────────────────────────────────────────
# Domain Errors
# ─────────────────────────────────────────────────────────────────────────────


class ValidationError(AppError):
    """Input failed one or more constraints. All violations are kept in ``issues``."""

    def __init__(
        self,
        message: str,
        issues: Sequence[ValidationIssue] = (),
        *,
        context: ErrorContext | None = None,
    ) -> None:
        self.issues = tuple(issues)
        data = {"issues": [i.model_dump() for i in self.issues]} if self.issues else None
        super().__init__(ErrorCode.VALIDATION_ERROR, message, data, context)

    @classmethod
    def from_issues(cls, issues: Sequence[ValidationIssue], *, context: ErrorContext | None = None) -> Self:
        """Aggregate issues into one error whose message lists each on its own line."""
        return cls("\n".join(str(i) for i in issues) or "Validation failed", issues, context=context)

    @classmethod
    def for_field(cls, field: str, value: object, expected: str, *, context: ErrorContext | None = None) -> Self:
        """Single-field failure: ``Invalid <field>: <json value>. Expected: <expected>``."""
        rendered = orjson.dumps(value, default=str).decode()
        return cls(f"Invalid {field}: {rendered}. Expected: {expected}",
                   [ValidationIssue(path=field, message=f"Expected: {expected}")], context=context)


class FileSystemError(AppError):
    """A filesystem operation failed. ``cause`` holds the underlying OSError."""

    def __init__(
        self,
        operation: str,
        path: str,
        cause: BaseException | None = None,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        data: JsonDict = {"operation": operation, "path": path}
        if cause is not None:
            data["cause"] = str(cause)
        super().__init__(ErrorCode.PERMISSION_DENIED, f"File system error during {operation}: {path}", data, context)
        self.operation, self.path, self.cause = operation, path, cause
        self.__cause__ = cause


class GenerationError(AppError):
    """A generator ran but could not produce its output."""

    def __init__(self, generator: str, reason: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(ErrorCode.INVALID_TOOL_CALL, f"Generation failed for '{generator}': {reason}",
                         {"generator": generator}, context)
        self.generator = generator


class ConfigurationError(AppError):
    """Configuration is missing, malformed or used before it was set up."""

    def __init__(self, message: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message, None, context)


class ResourceNotFoundError(AppError):
    """A named resource (file, rollback token, tool) does not exist."""

    def __init__(self, resource_type: str, resource_id: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(ErrorCode.RESOURCE_NOT_FOUND, f"{resource_type} not found: {resource_id}",
                         {"type": resource_type, "id": resource_id}, context)
        self.resource_type, self.resource_id = resource_type, resource_id


class PermissionDeniedError(AppError):
    """An operation was refused, e.g. a path outside the project root."""

    def __init__(self, operation: str, resource: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(ErrorCode.PERMISSION_DENIED, f"Permission denied: cannot {operation} {resource}",
                         {"operation": operation, "resource": resource}, context)


class InternalError(AppError):
    """Unexpected failure inside the server itself."""

    def __init__(
        self,
        operation: str,
        cause: BaseException | None = None,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        data = {"cause": str(cause)} if cause is not None else None
        super().__init__(ErrorCode.INTERNAL_ERROR, f"Internal error during {operation}", data, context)
        self.operation, self.cause = operation, cause
        self.__cause__ = cause


# ═══════════════════════════════════════════════════════════════════════════════
# Factory & Normalization
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorFactory:
    """Shorthand constructors for the errors raised at the protocol boundary."""

    __slots__ = ()

    @staticmethod
    def parse_error(detail: str = "") -> ProtocolError:
        return ProtocolError(ErrorCode.PARSE_ERROR, f"Parse error{': ' + detail if detail else ''}")

    @staticmethod
    def invalid_request(detail: str = "") -> ProtocolError:
        return ProtocolError(ErrorCode.INVALID_REQUEST, f"Invalid request{': ' + detail if detail else ''}")

    @staticmethod
    def method_not_found(method: str) -> ProtocolError:
        return ProtocolError(ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}", {"method": method})

    @staticmethod
    def invalid_params(detail: str) -> ProtocolError:
        return ProtocolError(ErrorCode.INVALID_PARAMS, f"Invalid params: {detail}")

    @staticmethod
    def tool_not_found(name: str, *, context: ErrorContext | None = None) -> AppError:
        return AppError(ErrorCode.TOOL_NOT_FOUND, f"Tool not found: {name}", {"tool": name}, context)

    @staticmethod
    def not_initialized(component: str) -> AppError:
        return AppError(ErrorCode.INTERNAL_ERROR, f"{component} not initialized", {"component": component})


def normalize(error: object, context: ErrorContext | None = None) -> ProtocolError:
    """Coerce any raised value into a ProtocolError.

    - ProtocolError passes through unchanged; an AppError without context gets ``context``.
    - Any other exception becomes INTERNAL_ERROR with its message and
      ``{originalErrorName, stack}`` as data.
    - Anything else is stringified into ``Unknown error: <value>``.

    Example:
        >>> normalize(ValueError("boom")).to_wire()["code"]
        -32603
    """
    if isinstance(error, AppError):
        return error.with_context(context) if context is not None else error
    if isinstance(error, ProtocolError):
        return error
    if isinstance(error, BaseException):
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return AppError(ErrorCode.INTERNAL_ERROR, str(error) or type(error).__name__,
                        {"originalErrorName": type(error).__name__, "stack": stack}, context)
    return AppError(ErrorCode.INTERNAL_ERROR, f"Unknown error: {error}", None, context)
