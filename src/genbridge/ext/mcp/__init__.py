"""JSON-RPC tool server over newline-delimited stdio.

- protocol: message shapes, codec, version negotiation
- transport: Transport protocol, StdioTransport, MemoryTransport
- server: ProtocolServer lifecycle and dispatch
"""

from .protocol import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    CallToolParams,
    InitializeParams,
    InvalidMessage,
    Message,
    Notification,
    Request,
    Response,
    classify,
    encode_message,
    negotiate_version,
    parse_message,
)
from .server import ProtocolServer, ServerPhase, ServerStatus, server_capabilities
from .transport import MemoryTransport, StdioTransport, Transport

__all__ = [
    # Protocol
    "Request", "Notification", "Response", "Message", "InvalidMessage",
    "InitializeParams", "CallToolParams", "parse_message", "classify", "encode_message",
    "negotiate_version", "LATEST_PROTOCOL_VERSION", "SUPPORTED_PROTOCOL_VERSIONS",
    # Server
    "ProtocolServer", "ServerPhase", "ServerStatus", "server_capabilities",
    # Transport
    "Transport", "StdioTransport", "MemoryTransport",
]
