"""Tests for the error taxonomy and normalize()."""

from __future__ import annotations

import re

import pytest

from genbridge.foundation.errors import (
    AppError,
    ConfigurationError,
    ErrorCode,
    ErrorFactory,
    FileSystemError,
    GenerationError,
    InternalError,
    PermissionDeniedError,
    ProtocolError,
    ResourceNotFoundError,
    ValidationError,
    ValidationIssue,
    create_error_context,
    generate_request_id,
    normalize,
)


# ═════════════════════════════════════════════════════════════════════════════
# Codes
# ═════════════════════════════════════════════════════════════════════════════


def test_wire_codes_are_exact() -> None:
    assert ErrorCode.PARSE_ERROR == -32700
    assert ErrorCode.INVALID_REQUEST == -32600
    assert ErrorCode.METHOD_NOT_FOUND == -32601
    assert ErrorCode.INVALID_PARAMS == -32602
    assert ErrorCode.INTERNAL_ERROR == -32603
    assert ErrorCode.RESOURCE_NOT_FOUND == -1001
    assert ErrorCode.RESOURCE_ALREADY_EXISTS == -1002
    assert ErrorCode.INVALID_TOOL_CALL == -1003
    assert ErrorCode.TOOL_NOT_FOUND == -1004
    assert ErrorCode.PERMISSION_DENIED == -1005
    assert ErrorCode.VALIDATION_ERROR == -1006


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (ValidationError("bad"), -1006),
        (FileSystemError("write", "a.txt", OSError("disk full")), -1005),
        (GenerationError("api", "template missing"), -1003),
        (ConfigurationError("no root"), -1006),
        (ResourceNotFoundError("Rollback token", "abc"), -1001),
        (PermissionDeniedError("write", "/etc/passwd"), -1005),
        (InternalError("start server"), -32603),
    ],
)
def test_domain_error_codes(error: AppError, code: int) -> None:
    assert error.code == code
    assert isinstance(error, ProtocolError)
    assert error.to_wire()["code"] == code


def test_messages() -> None:
    assert ResourceNotFoundError("Rollback token", "abc").message == "Rollback token not found: abc"
    assert FileSystemError("write", "a.txt").message == "File system error during write: a.txt"
    assert InternalError("start server").message == "Internal error during start server"


def test_filesystem_error_keeps_cause() -> None:
    cause = PermissionError("denied")
    err = FileSystemError("delete", "x.txt", cause)
    assert err.cause is cause
    assert err.__cause__ is cause
    assert err.to_wire()["data"]["cause"] == "denied"


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════


def test_validation_error_aggregates_issues() -> None:
    issues = [ValidationIssue(path="name", message="Field required"),
              ValidationIssue(path="count", message="Input should be a valid number")]
    err = ValidationError.from_issues(issues)
    assert err.message.splitlines() == ["Field required (name)", "Input should be a valid number (count)"]
    assert len(err.to_wire()["data"]["issues"]) == 2


def test_validation_error_for_field() -> None:
    err = ValidationError.for_field("rollbackToken", "../x", "a token")
    assert err.message == 'Invalid rollbackToken: "../x". Expected: a token'
    assert err.issues[0].path == "rollbackToken"


# ═════════════════════════════════════════════════════════════════════════════
# Context
# ═════════════════════════════════════════════════════════════════════════════


def test_request_id_format() -> None:
    assert re.fullmatch(r"req_\d+_[0-9a-z]{9}", generate_request_id())
    assert generate_request_id() != generate_request_id()


def test_context_on_wire() -> None:
    ctx = create_error_context(tool="api", operation="tools/call", request_id="req_1_abc")
    wire = ResourceNotFoundError("Tool", "api", context=ctx).to_wire()
    assert wire["data"]["context"]["tool"] == "api"
    assert wire["data"]["context"]["requestId"] == "req_1_abc"
    assert "parameters" not in wire["data"]["context"]


# ═════════════════════════════════════════════════════════════════════════════
# normalize()
# ═════════════════════════════════════════════════════════════════════════════


def test_normalize_generic_exception() -> None:
    err = normalize(Exception("boom"))
    assert err.code == -32603
    assert err.message == "boom"
    assert err.data["originalErrorName"] == "Exception"
    assert "boom" in err.data["stack"]


def test_normalize_passes_typed_error_through() -> None:
    original = PermissionDeniedError("write", "x")
    assert normalize(original) is original


def test_normalize_attaches_context_only_when_missing() -> None:
    first = create_error_context(tool="a")
    second = create_error_context(tool="b")
    err = normalize(ValidationError("bad"), first)
    assert err.context is first
    assert normalize(err, second).context is first


def test_normalize_protocol_error_unchanged() -> None:
    err = ErrorFactory.method_not_found("nope")
    assert normalize(err) is err
    assert err.to_wire() == {"code": -32601, "message": "Method not found: nope", "data": {"method": "nope"}}


def test_normalize_non_exception_value() -> None:
    err = normalize("something odd")
    assert err.code == -32603
    assert err.message == "Unknown error: something odd"


def test_factory_codes() -> None:
    assert ErrorFactory.parse_error().code == -32700
    assert ErrorFactory.invalid_request("x").code == -32600
    assert ErrorFactory.invalid_params("x").code == -32602
    assert ErrorFactory.tool_not_found("does_not_exist").code == -1004
    assert ErrorFactory.not_initialized("Tool registry").message == "Tool registry not initialized"
