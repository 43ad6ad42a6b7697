"""JSON-RPC 2.0 message model for the bridge.

Messages are told apart by shape, never by a tag:

- Request: ``method`` and ``id``
- Notification: ``method`` and no ``id``
- Response: ``id`` and exactly one of ``result`` / ``error``

Example:
    >>> msg = parse_message(b'{"jsonrpc": "2.0", "id": 1, "method": "ping"}')
    >>> isinstance(msg, Request), msg.method
    (True, 'ping')
"""

from __future__ import annotations

from typing import Any, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from genbridge.foundation.errors import ErrorCode, JsonDict, ProtocolError

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

RequestId = Union[str, int]


class InvalidMessage(ProtocolError):
    """Unparseable or malformed input. ``message_id`` is the request id when one could be read."""

    def __init__(self, code: ErrorCode, message: str, message_id: RequestId | None = None) -> None:
        super().__init__(code, message)
        self.message_id = message_id


# ─────────────────────────────────────────────────────────────────────────────
# Envelopes
# ─────────────────────────────────────────────────────────────────────────────


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class Request(_Envelope):
    id: RequestId
    method: str = Field(min_length=1)
    params: JsonDict | list[Any] | None = None

    def to_wire(self) -> JsonDict:
        return self.model_dump(exclude_none=True)


class Notification(_Envelope):
    method: str = Field(min_length=1)
    params: JsonDict | list[Any] | None = None

    def to_wire(self) -> JsonDict:
        return self.model_dump(exclude_none=True)


class Response(_Envelope):
    id: RequestId | None
    result: Any = None
    error: JsonDict | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> JsonDict:
        body: JsonDict = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            body["error"] = self.error
        else:
            body["result"] = self.result if self.result is not None else {}
        return body


Message = Union[Request, Notification, Response]


def success(request_id: RequestId, result: Any) -> Response:
    return Response(id=request_id, result=result)


def failure(request_id: RequestId | None, error: ProtocolError) -> Response:
    return Response(id=request_id, error=error.to_wire())


# ─────────────────────────────────────────────────────────────────────────────
# Codec
# ─────────────────────────────────────────────────────────────────────────────


def _readable_id(payload: object) -> RequestId | None:
    if isinstance(payload, dict) and isinstance(rid := payload.get("id"), (str, int)) and not isinstance(rid, bool):
        return rid
    return None


def classify(payload: object) -> Message:
    """Decide which message ``payload`` is from its keys alone.

    Raises:
        InvalidMessage: INVALID_REQUEST when no shape matches or a field has the wrong type.
    """
    rid = _readable_id(payload)
    if not isinstance(payload, dict):
        raise InvalidMessage(ErrorCode.INVALID_REQUEST, "Invalid request: expected a JSON object")
    if payload.get("jsonrpc") != JSONRPC_VERSION:
        raise InvalidMessage(ErrorCode.INVALID_REQUEST, "Invalid request: jsonrpc must be \"2.0\"", rid)

    has_id, has_method = "id" in payload, "method" in payload
    has_result, has_error = "result" in payload, "error" in payload
    try:
        if has_method and has_id:
            if isinstance(payload["id"], bool) or payload["id"] is None:
                raise InvalidMessage(ErrorCode.INVALID_REQUEST, "Invalid request: id must be a string or number")
            return Request.model_validate(payload)
        if has_method:
            return Notification.model_validate(payload)
        if has_id and has_result != has_error:
            return Response.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        raise InvalidMessage(ErrorCode.INVALID_REQUEST, f"Invalid request: {where}: {first['msg']}", rid) from e
    raise InvalidMessage(ErrorCode.INVALID_REQUEST, "Invalid request: not a request, notification or response", rid)


def parse_message(raw: bytes | str) -> Message:
    """Decode one line of input.

    Raises:
        InvalidMessage: PARSE_ERROR for malformed JSON, INVALID_REQUEST for a bad shape.
    """
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise InvalidMessage(ErrorCode.PARSE_ERROR, f"Parse error: {e}") from e
    return classify(payload)


def encode_message(message: Message) -> bytes:
    """One newline-terminated JSON line."""
    return orjson.dumps(message.to_wire(), default=str) + b"\n"


# ─────────────────────────────────────────────────────────────────────────────
# Method Params
# ─────────────────────────────────────────────────────────────────────────────


class InitializeParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    protocol_version: str = Field(default=LATEST_PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: JsonDict = Field(default_factory=dict)
    client_info: JsonDict | None = Field(default=None, alias="clientInfo")


class CallToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    arguments: JsonDict | None = None


def negotiate_version(requested: str) -> str:
    """Echo the client's version when supported, else offer the latest."""
    return requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
