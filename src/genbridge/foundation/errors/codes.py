"""Numeric error codes carried on the wire.

JSON-RPC reserves the -32xxx range; the -1xxx range is application specific.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Closed set of wire error codes."""

    # JSON-RPC 2.0
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Application
    RESOURCE_NOT_FOUND = -1001
    RESOURCE_ALREADY_EXISTS = -1002
    INVALID_TOOL_CALL = -1003
    TOOL_NOT_FOUND = -1004
    PERMISSION_DENIED = -1005
    VALIDATION_ERROR = -1006
