"""Byte transports carrying newline-delimited JSON messages.

StdioTransport is what the CLI serves on. MemoryTransport backs embedded use
and tests: feed it inbound lines and read back what the server sent.
"""

from __future__ import annotations

import asyncio
import os
import stat
import sys
from typing import Any, BinaryIO, Protocol, runtime_checkable

import orjson

from genbridge.foundation.errors import ErrorCode

from .protocol import InvalidMessage

# Largest single message accepted on stdin
STREAM_LIMIT = 16 * 1024 * 1024


@runtime_checkable
class Transport(Protocol):
    """Line-oriented duplex channel. receive() returns None at end of input."""

    async def open(self) -> None: ...
    async def receive(self) -> bytes | None: ...
    async def send(self, data: bytes) -> None: ...
    async def close(self) -> None: ...


class StdioTransport:
    """stdin/stdout transport.

    Pipes and sockets are read through the event loop. Regular files, which
    the loop cannot watch, are read in a worker thread instead. A line longer
    than ``limit`` is discarded and reported as InvalidMessage; reading then
    continues with the next line.
    """

    __slots__ = ("_stdin", "_stdout", "_limit", "_reader", "_threaded")

    def __init__(
        self, stdin: BinaryIO | None = None, stdout: BinaryIO | None = None, *, limit: int = STREAM_LIMIT,
    ) -> None:
        self._stdin = stdin or sys.stdin.buffer
        self._stdout = stdout or sys.stdout.buffer
        self._limit = limit
        self._reader: asyncio.StreamReader | None = None
        self._threaded = False

    async def open(self) -> None:
        if self._reader is not None or self._threaded:
            return
        mode = os.fstat(self._stdin.fileno()).st_mode
        if stat.S_ISREG(mode):
            self._threaded = True
            return
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self._limit)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), self._stdin)
        self._reader = reader

    async def receive(self) -> bytes | None:
        if self._threaded:
            line = await asyncio.to_thread(self._stdin.readline)
            if len(line) > self._limit:
                raise self._too_large()
        elif self._reader is not None:
            line = await self._read_line(self._reader)
        else:
            raise RuntimeError("transport not open")
        return line or None

    async def _read_line(self, reader: asyncio.StreamReader) -> bytes:
        try:
            return await reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            return e.partial
        except asyncio.LimitOverrunError as e:
            consumed = e.consumed
        # Drop the rest of the oversized line, chunk by chunk
        while True:
            await reader.readexactly(consumed)
            try:
                await reader.readuntil(b"\n")
                break
            except asyncio.IncompleteReadError:
                break
            except asyncio.LimitOverrunError as e:
                consumed = e.consumed
        raise self._too_large()

    def _too_large(self) -> InvalidMessage:
        return InvalidMessage(ErrorCode.INVALID_REQUEST, f"Invalid request: message exceeds {self._limit} bytes")

    async def send(self, data: bytes) -> None:
        await asyncio.to_thread(self._write, data)

    def _write(self, data: bytes) -> None:
        self._stdout.write(data)
        self._stdout.flush()

    async def close(self) -> None:
        self._reader = None
        self._threaded = False


class MemoryTransport:
    """In-process transport. Inbound lines come from feed(); outbound lines collect in ``sent``.

    Example:
        >>> transport = MemoryTransport()
        >>> transport.feed({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        >>> await server.start()
        >>> await transport.next_message()
        {'jsonrpc': '2.0', 'id': 1, 'result': {}}
    """

    __slots__ = ("_inbound", "_outbound", "sent", "closed")

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._outbound: asyncio.Queue[bytes] = asyncio.Queue()
        self.sent: list[bytes] = []
        self.closed = False

    def feed(self, message: Any) -> None:
        """Queue an inbound line. Dicts are JSON-encoded; bytes and str are sent as is."""
        match message:
            case bytes():
                line = message
            case str():
                line = message.encode()
            case _:
                line = orjson.dumps(message)
        self._inbound.put_nowait(line)

    def end_input(self) -> None:
        self._inbound.put_nowait(None)

    async def next_message(self, timeout: float = 5.0) -> Any:
        """Next line the server sent, decoded."""
        return orjson.loads(await asyncio.wait_for(self._outbound.get(), timeout))

    async def open(self) -> None:
        self.closed = False

    async def receive(self) -> bytes | None:
        return await self._inbound.get()

    async def send(self, data: bytes) -> None:
        self.sent.append(data)
        self._outbound.put_nowait(data)

    async def close(self) -> None:
        self.closed = True
