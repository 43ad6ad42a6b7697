"""JSON aliases and per-call error context.

ErrorContext travels with an error from the point of failure to the wire so a
response can be correlated with the request and tool that produced it.
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import UTC, datetime
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

# ═══════════════════════════════════════════════════════════════════════════════
# Type Aliases
# ═══════════════════════════════════════════════════════════════════════════════

JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]
JsonDict = dict[str, Any]

_BASE36 = string.digits + string.ascii_lowercase


# ═══════════════════════════════════════════════════════════════════════════════
# Error Context
# ═══════════════════════════════════════════════════════════════════════════════


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def generate_request_id() -> str:
    """Correlation id of the form ``req_<epoch-millis>_<9 base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class ErrorContext(BaseModel):
    """Where and during what an error happened. Frozen; build a new one to change it."""

    model_config = ConfigDict(
        frozen=True, extra="forbid", populate_by_name=True, revalidate_instances="never",
        json_schema_extra={"title": "Error Context", "examples": [
            {"tool": "api", "operation": "tools/call", "requestId": "req_1700000000000_k3j2h1g0f"},
        ]},
    )

    tool: str | None = None
    operation: str | None = None
    parameters: JsonDict | None = Field(default=None, repr=False)
    timestamp: str = Field(default_factory=_now_iso)
    request_id: str = Field(default_factory=generate_request_id, alias="requestId", min_length=1)

    def to_wire(self) -> JsonDict:
        """Camel-cased dict with unset optionals dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def __str__(self) -> str:
        parts = [f"{k}={v}" for k, v in (("tool", self.tool), ("operation", self.operation)) if v]
        return f"[{self.request_id}] {' '.join(parts)}".rstrip()


def create_error_context(
    tool: str | None = None,
    operation: str | None = None,
    parameters: JsonDict | None = None,
    *,
    request_id: str | None = None,
) -> ErrorContext:
    """Build an ErrorContext stamped with the current time and a fresh request id."""
    return ErrorContext.model_construct(
        tool=tool,
        operation=operation,
        parameters=parameters,
        timestamp=_now_iso(),
        request_id=request_id or generate_request_id(),
    )
