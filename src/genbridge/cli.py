"""CLI entrypoint for `genbridge`.

stdout belongs to the protocol while the server runs, so everything the CLI
itself prints for ``start`` goes to stderr. ``stop`` and ``status`` find the
serving process through a PID file in the project's ``.genbridge`` directory.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

import orjson

from genbridge.ext.mcp import ProtocolServer
from genbridge.foundation.config import CONFIG_DIR, ConfigurationManager
from genbridge.foundation.context import ServerContext
from genbridge.foundation.errors import InternalError, JsonDict, normalize
from genbridge.runtime.observability import configure_logging, get_logger

log = get_logger("genbridge.cli")

PID_FILE = "server.pid"


@dataclass(slots=True, frozen=True)
class PidRecord:
    pid: int
    started_at: float

    @property
    def uptime(self) -> float:
        return max(0.0, time.time() - self.started_at)


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class ServerManager:
    """Tracks the serving process for one project through ``.genbridge/server.pid``."""

    __slots__ = ("path",)

    def __init__(self, project_root: Path | str) -> None:
        self.path = Path(project_root) / CONFIG_DIR / PID_FILE

    def read(self) -> PidRecord | None:
        try:
            data = orjson.loads(self.path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, orjson.JSONDecodeError) as e:
            log.warning("unreadable pid file", path=str(self.path), error=str(e))
            return None
        try:
            return PidRecord(int(data["pid"]), float(data["startedAt"]))
        except (KeyError, TypeError, ValueError):
            log.warning("malformed pid file", path=str(self.path))
            return None

    def running(self) -> PidRecord | None:
        """Live record, or None. A record whose process is gone is removed."""
        record = self.read()
        if record is None:
            return None
        if _alive(record.pid):
            return record
        log.debug("removing stale pid file", pid=record.pid)
        self.path.unlink(missing_ok=True)
        return None

    def claim(self, pid: int | None = None) -> PidRecord:
        """Record ``pid`` (default: this process) as the server.

        Raises:
            InternalError: Another live process already holds the file.
        """
        if (current := self.running()) is not None:
            raise InternalError("start server", RuntimeError(f"Server is already running (pid {current.pid})"))
        record = PidRecord(pid or os.getpid(), time.time())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(orjson.dumps({"pid": record.pid, "startedAt": record.started_at}))
        return record

    def release(self, pid: int | None = None) -> None:
        """Remove the file if it still names ``pid`` (default: this process)."""
        record = self.read()
        if record is not None and record.pid == (pid or os.getpid()):
            self.path.unlink(missing_ok=True)

    def status(self) -> JsonDict:
        if (record := self.running()) is None:
            return {"isRunning": False, "pid": None}
        return {"isRunning": True, "pid": record.pid, "uptime": round(record.uptime, 1)}

    def signal_stop(self) -> int | None:
        """Send SIGTERM to the server. Returns its pid, or None when nothing is running."""
        if (record := self.running()) is None:
            return None
        os.kill(record.pid, signal.SIGTERM)
        return record.pid


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────


async def _serve(ctx: ServerContext, *, entry_points: bool) -> None:
    server = ProtocolServer(ctx, generators=lambda: ctx.generators(entry_points=entry_points))
    await server.serve_forever()


def cmd_start(args: argparse.Namespace) -> int:
    ctx = ServerContext.create(args.project_root)
    logging_settings = ctx.settings.logging
    configure_logging(logging_settings.format, logging_settings.level)
    manager = ServerManager(ctx.project_root)
    manager.claim()
    print("Starting genbridge server in stdio mode...", file=sys.stderr)
    try:
        asyncio.run(_serve(ctx, entry_points=not args.no_entry_points))
    finally:
        manager.release()
    print("Server stopped", file=sys.stderr)
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    manager = ServerManager(ConfigurationManager(args.project_root).project_root())
    if (pid := manager.signal_stop()) is None:
        print("Server is not running")
        return 0
    print(f"Stop signal sent to server (pid {pid})")
    return 0


def _format_uptime(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 3600}h {total % 3600 // 60}m {total % 60}s"


def cmd_status(args: argparse.Namespace) -> int:
    manager = ServerManager(ConfigurationManager(args.project_root).project_root())
    status = manager.status()
    if args.json:
        print(orjson.dumps(status, option=orjson.OPT_INDENT_2).decode())
        return 0
    print("genbridge server status")
    if status["isRunning"]:
        print("  Status: running")
        print(f"  PID:    {status['pid']}")
        print(f"  Uptime: {_format_uptime(status['uptime'])}")
    else:
        print("  Status: not running")
    return 0


COMMANDS = {"start": cmd_start, "stop": cmd_stop, "status": cmd_status}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="genbridge", description="Expose project generators as protocol tools")
    parser.add_argument("--project-root", default=None,
                        help="Directory to search for .genbridge/config.json (default: cwd)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_start = sub.add_parser("start", help="Serve tools over stdio until end of input or SIGINT/SIGTERM")
    p_start.add_argument("--no-entry-points", action="store_true",
                         help="Only expose the built-in file tools")

    sub.add_parser("stop", help="Signal the running server to stop")

    p_status = sub.add_parser("status", help="Show whether a server is running")
    p_status.add_argument("--json", action="store_true", help="JSON output")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        error = normalize(e)
        detail = f": {e.cause}" if isinstance(e, InternalError) and e.cause is not None else ""
        print(f"error: {error.message}{detail}", file=sys.stderr)
        log.debug("command failed", command=args.command, code=error.code)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
