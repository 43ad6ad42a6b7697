"""Protocol server: lifecycle, dispatch and the wire boundary.

The server reads newline-delimited JSON from a Transport, answers requests
from the ToolRegistry, and converts every failure into an error response
through normalize(). Nothing raised by a tool reaches the read loop.

Lifecycle::

    IDLE --start()--> RUNNING --stop()--> STOPPING --> IDLE

Example:
    >>> ctx = ServerContext.create()
    >>> server = ProtocolServer(ctx, generators=[api_generator])
    >>> await server.serve_forever()  # until end of input or SIGINT/SIGTERM
"""

from __future__ import annotations

import asyncio
import signal
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from types import TracebackType
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from genbridge.foundation.context import ServerContext
from genbridge.foundation.core import GeneratorSource
from genbridge.foundation.errors import (
    ErrorFactory,
    InternalError,
    JsonDict,
    create_error_context,
    normalize,
)
from genbridge.foundation.registry import ToolRegistry
from genbridge.runtime.observability import get_logger, log_context

from .protocol import (
    CallToolParams,
    InitializeParams,
    InvalidMessage,
    Message,
    Notification,
    Request,
    RequestId,
    Response,
    encode_message,
    failure,
    negotiate_version,
    parse_message,
    success,
)
from .transport import StdioTransport, Transport

log = get_logger("genbridge.server")

P = TypeVar("P", bound=BaseModel)

DEFAULT_DRAIN_TIMEOUT = 10.0
DEFAULT_INSTRUCTIONS = (
    "Project generators exposed as tools. Call tools/list to see them. "
    "Mutating file tools accept backup, dryRun and rollbackToken."
)
TOOLS_CHANGED = "notifications/tools/list_changed"


def server_capabilities() -> JsonDict:
    return {
        "tools": {"listChanged": True},
        "resources": {"subscribe": False, "listChanged": False},
    }


class ServerPhase(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(slots=True)
class ServerStatus:
    """Snapshot of the server for status output."""

    phase: ServerPhase
    session_id: str | None = None
    started_at: float | None = None
    client_capabilities: JsonDict = field(default_factory=dict)
    client_info: JsonDict | None = None
    tools: int = 0

    @property
    def running(self) -> bool:
        return self.phase is ServerPhase.RUNNING

    def to_dict(self) -> JsonDict:
        return {
            "phase": str(self.phase),
            "running": self.running,
            "sessionId": self.session_id,
            "startedAt": self.started_at,
            "clientCapabilities": self.client_capabilities,
            "clientInfo": self.client_info,
            "tools": self.tools,
        }


def _parse_params(model: type[P], raw: Any) -> P:
    try:
        return model.model_validate(raw if raw is not None else {})
    except PydanticValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "params"
        raise ErrorFactory.invalid_params(f"{where}: {first['msg']}") from e


class ProtocolServer:
    """Serves a ToolRegistry over a Transport.

    Args:
        context: Owns config, project root and backups. Opened on start, closed on stop.
        generators: Generator source for the registry. Defaults to ``context.generators``.
        transport: Defaults to stdin/stdout.
        registry: Supply one to share it; otherwise a fresh registry is built.
        drain_timeout: Seconds stop() waits for in-flight tool calls.
    """

    __slots__ = (
        "context", "registry", "transport", "_source", "_drain_timeout", "_instructions",
        "_phase", "_starting", "_session_id", "_started_at", "_client_capabilities", "_client_info",
        "_reader", "_inflight", "_write_lock", "_stopped", "_shutdown_requested", "_stop_task", "_signals",
    )

    def __init__(
        self,
        context: ServerContext,
        *,
        generators: GeneratorSource | None = None,
        transport: Transport | None = None,
        registry: ToolRegistry | None = None,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
        instructions: str = DEFAULT_INSTRUCTIONS,
    ) -> None:
        self.context = context
        self.registry = registry if registry is not None else ToolRegistry()
        self.transport: Transport = transport if transport is not None else StdioTransport()
        self._source: GeneratorSource = generators if generators is not None else context.generators
        self._drain_timeout = drain_timeout
        self._instructions = instructions
        self._phase = ServerPhase.IDLE
        self._starting = False
        self._session_id: str | None = None
        self._started_at: float | None = None
        self._client_capabilities: JsonDict = {}
        self._client_info: JsonDict | None = None
        self._reader: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._write_lock = asyncio.Lock()
        self._stopped = asyncio.Event()
        self._stopped.set()
        self._shutdown_requested = False
        self._stop_task: asyncio.Task[None] | None = None
        self._signals: list[signal.Signals] = []

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    @property
    def phase(self) -> ServerPhase:
        return self._phase

    @property
    def is_running(self) -> bool:
        return self._phase is ServerPhase.RUNNING

    @property
    def status(self) -> ServerStatus:
        return ServerStatus(
            phase=self._phase,
            session_id=self._session_id,
            started_at=self._started_at,
            client_capabilities=dict(self._client_capabilities),
            client_info=self._client_info,
            tools=len(self.registry),
        )

    async def start(self) -> None:
        """Open the context and transport, build tools, begin reading.

        Raises:
            InternalError: Already running, stopping, or mid-start.
        """
        if self._starting or self._phase is not ServerPhase.IDLE:
            raise InternalError("start server", RuntimeError(f"server is {self._phase}"))
        self._starting = True
        try:
            await self.context.open()
            try:
                self.registry.initialize(self._source)
                await self.transport.open()
            except Exception as e:
                log.error("server start failed", error=str(e))
                await self.context.close()
                raise
            self._session_id = str(uuid.uuid4())
            self._started_at = time.time()
            self._shutdown_requested = False
            self._stopped.clear()
            self._phase = ServerPhase.RUNNING
            self._reader = asyncio.create_task(self._read_loop(), name="genbridge-reader")
        finally:
            self._starting = False
        log.info("server started", session_id=self._session_id, tools=len(self.registry),
                 project_root=str(self.context.project_root))

    async def stop(self) -> None:
        """Stop reading, drain in-flight calls, close transport and context. No-op unless running.

        Best effort: failures are logged and the server still ends up IDLE.
        """
        if self._phase is not ServerPhase.RUNNING:
            return
        self._phase = ServerPhase.STOPPING
        log.info("server stopping", session_id=self._session_id)
        try:
            reader = self._reader
            if reader is not None and reader is not asyncio.current_task():
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
            await self._drain()
            for step in (self.transport.close, self.context.close):
                try:
                    await step()
                except Exception as e:
                    log.error("shutdown step failed", step=step.__qualname__, error=str(e))
        finally:
            self._remove_signal_handlers()
            self._phase = ServerPhase.IDLE
            self._reader = None
            self._stopped.set()
            log.info("server stopped", session_id=self._session_id)

    async def _drain(self) -> None:
        if not self._inflight:
            return
        _, pending = await asyncio.wait(set(self._inflight), timeout=self._drain_timeout)
        if pending:
            log.warning("abandoning in-flight requests", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def request_shutdown(self) -> None:
        """Schedule stop() once. Later calls, and calls while not running, do nothing."""
        if self._shutdown_requested or self._phase is not ServerPhase.RUNNING:
            return
        self._shutdown_requested = True
        self._stop_task = asyncio.get_running_loop().create_task(self.stop(), name="genbridge-stop")

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to request_shutdown()."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError) as e:
                log.debug("signal handler unavailable", signal=sig.name, error=str(e))
                continue
            self._signals.append(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        log.info("signal received", signal=sig.name)
        self.request_shutdown()

    def _remove_signal_handlers(self) -> None:
        if not self._signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    async def wait_closed(self) -> None:
        """Resolve once the server is back to IDLE."""
        await self._stopped.wait()
        if self._stop_task is not None:
            await self._stop_task

    async def serve_forever(self) -> None:
        """Start, handle signals, and return after end of input or a termination signal."""
        await self.start()
        self.install_signal_handlers()
        await self.wait_closed()

    async def __aenter__(self) -> ProtocolServer:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # ─────────────────────────────────────────────────────────────────
    # Tools
    # ─────────────────────────────────────────────────────────────────

    async def refresh_tools(self) -> None:
        """Rebuild the registry and tell a connected client the tool list changed."""
        if self.registry.is_initialized:
            self.registry.refresh()
        else:
            self.registry.initialize(self._source)
        log.info("tools refreshed", tools=len(self.registry))
        if self.is_running:
            await self._send(Notification(method=TOOLS_CHANGED))

    # ─────────────────────────────────────────────────────────────────
    # Read Loop
    # ─────────────────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        while True:
            try:
                line = await self.transport.receive()
            except InvalidMessage as e:
                log.warning("invalid message", code=e.code, error=e.message)
                await self._send(failure(e.message_id, e))
                continue
            except Exception as e:
                log.error("transport read failed", error=str(e))
                self.request_shutdown()
                return
            if line is None:
                log.info("end of input")
                self.request_shutdown()
                return
            if not line.strip():
                continue
            task = asyncio.create_task(self._process(line))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _process(self, line: bytes) -> None:
        try:
            message = parse_message(line)
        except InvalidMessage as e:
            log.warning("invalid message", code=e.code, error=e.message)
            await self._send(failure(e.message_id, e))
            return
        match message:
            case Request():
                await self._send(await self.handle_request(message))
            case Notification():
                self._handle_notification(message)
            case Response():
                log.debug("dropping inbound response", id=message.id)

    async def _send(self, message: Message) -> None:
        try:
            async with self._write_lock:
                await self.transport.send(encode_message(message))
        except Exception as e:
            log.error("transport write failed", error=str(e))

    # ─────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────

    async def handle_request(self, request: Request) -> Response:
        """Answer one request. Always returns a Response; failures become error responses."""
        with log_context(request_id=str(request.id), method=request.method):
            started = time.perf_counter()
            try:
                result = await self._dispatch(request)
            except Exception as e:
                error = normalize(e, create_error_context(operation=request.method))
                log.warning("request failed", code=error.code, error=error.message)
                return failure(request.id, error)
            log.debug("request handled", duration_ms=round((time.perf_counter() - started) * 1000, 2))
            return success(request.id, result)

    async def _dispatch(self, request: Request) -> Any:
        match request.method:
            case "initialize":
                return self._initialize(request.params)
            case "ping":
                return {}
            case "tools/list":
                return {"tools": [d.to_wire() for d in self.registry.get_definitions().values()]}
            case "tools/call":
                return await self._call_tool(request.params, request.id)
            case "resources/list":
                return {"resources": []}
            case method:
                raise ErrorFactory.method_not_found(method)

    def _initialize(self, raw: Any) -> JsonDict:
        params = _parse_params(InitializeParams, raw)
        self._client_capabilities = params.capabilities
        self._client_info = params.client_info
        settings = self.context.settings
        version = negotiate_version(params.protocol_version)
        log.info("client initializing", client=params.client_info, protocol_version=version)
        return {
            "protocolVersion": version,
            "capabilities": server_capabilities(),
            "serverInfo": {"name": settings.name, "version": settings.version},
            "instructions": self._instructions,
        }

    async def _call_tool(self, raw: Any, request_id: RequestId) -> JsonDict:
        params = _parse_params(CallToolParams, raw)
        tool = self.registry.get(params.name)
        if tool is None:
            raise ErrorFactory.tool_not_found(params.name, context=create_error_context(
                tool=params.name, operation="tools/call"))
        log.debug("calling tool", tool=params.name, id=request_id)
        outcome = await tool.handler(params.arguments or {})
        return outcome.unwrap_or_raise().to_wire()

    def _handle_notification(self, note: Notification) -> None:
        match note.method:
            case "notifications/initialized":
                log.info("client ready", client=self._client_info)
            case "notifications/cancelled":
                log.debug("cancellation ignored; calls run to completion", params=note.params)
            case method:
                log.debug("unhandled notification", method=method)
