"""Process-scoped state for one bridge instance.

A ServerContext owns the configuration manager, the backup manager and the
project root. It is created once and handed to the server and the built-in
tools; nothing in genbridge reaches for it through a module global.

Example:
    >>> ctx = ServerContext.create(Path("/work/app"))
    >>> async with ctx:
    ...     server = ProtocolServer(ctx, generators=ctx.generators())
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from types import TracebackType

from genbridge.foundation.config import ConfigurationManager, ServerSettings
from genbridge.foundation.core import Generator, load_entry_point_generators
from genbridge.foundation.errors import FileSystemError
from genbridge.io.backup import BackupManager
from genbridge.runtime.observability import get_logger
from genbridge.tools import file_generators

log = get_logger("genbridge.context")


class ServerContext:
    """Settings, project root and backup manager, with explicit open/close."""

    __slots__ = ("config", "project_root", "backups", "_open")

    def __init__(
        self,
        config: ConfigurationManager,
        project_root: Path | str,
        backups: BackupManager | None = None,
    ) -> None:
        self.config = config
        self.project_root = Path(project_root).resolve()
        self.backups = backups or BackupManager.from_settings(config.settings.backup)
        self._open = False

    @classmethod
    def create(cls, start: Path | str | None = None) -> ServerContext:
        """Discover config from ``start`` (default: cwd) and derive the project root from it."""
        config = ConfigurationManager(start)
        return cls(config, config.project_root())

    @property
    def settings(self) -> ServerSettings:
        return self.config.settings

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        """Bind the backup manager to the project root and prune stale backups. Idempotent."""
        if self._open:
            return
        self.backups.initialize(self.project_root)
        try:
            await self.backups.cleanup_old_backups()
        except FileSystemError as e:
            log.warning("backup cleanup failed", error=e.message)
        self._open = True
        log.debug("server context opened", project_root=str(self.project_root))

    async def close(self) -> None:
        self._open = False

    def generators(self, extra: Iterable[Generator] = (), *, entry_points: bool = True) -> list[Generator]:
        """Built-in file tools, installed entry-point generators, then ``extra``."""
        found = file_generators(self.project_root, self.backups)
        if entry_points:
            found.extend(load_entry_point_generators())
        found.extend(extra)
        return found

    async def __aenter__(self) -> ServerContext:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
