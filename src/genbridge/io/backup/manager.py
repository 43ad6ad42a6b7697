"""Token-addressed file backups with single-use rollback.

Before a tool mutates a file it asks the manager for a backup. When a rollback
token is supplied the backup is registered under it, and perform_rollback()
later restores the original bytes exactly once. Backups accumulate in one
directory and are pruned by cleanup_old_backups() on age and count.

Example:
    >>> manager = BackupManager()
    >>> manager.initialize(project_root)
    >>> token = manager.generate_rollback_token()
    >>> await manager.create_backup(project_root / "src/api.py", token)
    >>> # ... overwrite the file ...
    >>> await manager.perform_rollback(token)
    ['/project/src/api.py']
"""

from __future__ import annotations

import asyncio
import os
import shutil
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from genbridge.foundation.config import BackupSettings
from genbridge.foundation.config.settings import DEFAULT_BACKUP_DIR, DEFAULT_MAX_BACKUP_AGE, DEFAULT_MAX_BACKUPS
from genbridge.foundation.errors import ConfigurationError, FileSystemError, ResourceNotFoundError, ValidationError
from genbridge.runtime.observability import get_logger

log = get_logger("genbridge.backup")

OperationKind = Literal["write", "delete"]
BACKUP_MARKER = ".bak."


class RollbackOperation(BaseModel):
    """One live, undoable mutation. Exactly one exists per token."""

    model_config = ConfigDict(frozen=True)

    token: str
    original_path: Path
    backup_path: Path
    kind: OperationKind = "write"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class SimulationResult(BaseModel):
    """What a write or delete would do, for dry runs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    would_overwrite: bool = Field(alias="wouldOverwrite")
    backup_would_be_created: bool = Field(alias="backupWouldBeCreated")
    target_path: str = Field(alias="targetPath")


def _exists(path: Path) -> bool:
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


class BackupManager:
    """Owns the backup directory and the token registry for one project.

    Must be initialized with a project root before use; every operation before
    that raises ConfigurationError.
    """

    __slots__ = ("_directory", "_backup_dir", "_max_age", "_max_count", "_operations")

    def __init__(
        self,
        max_age: float = DEFAULT_MAX_BACKUP_AGE,
        max_count: int = DEFAULT_MAX_BACKUPS,
        *,
        directory: str = DEFAULT_BACKUP_DIR,
    ) -> None:
        self._directory = directory
        self._backup_dir: Path | None = None
        self._max_age = max_age
        self._max_count = max_count
        self._operations: dict[str, RollbackOperation] = {}

    @classmethod
    def from_settings(cls, settings: BackupSettings) -> BackupManager:
        return cls(settings.max_age_seconds, settings.max_count, directory=settings.directory)

    def initialize(self, project_root: Path | str) -> Path:
        """Bind to ``project_root``. The directory itself is created on first backup."""
        self._backup_dir = Path(project_root).resolve() / self._directory
        log.debug("backup manager initialized", backup_dir=str(self._backup_dir))
        return self._backup_dir

    @property
    def is_initialized(self) -> bool:
        return self._backup_dir is not None

    def _require_initialized(self) -> Path:
        if self._backup_dir is None:
            raise ConfigurationError("Backup manager not initialized. Call initialize() with a project root first.")
        return self._backup_dir

    @property
    def backup_dir(self) -> Path:
        return self._require_initialized()

    async def _ensure_dir(self) -> Path:
        backup_dir = self.backup_dir
        try:
            await asyncio.to_thread(backup_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise FileSystemError("create backup directory", str(backup_dir), e) from e
        return backup_dir

    # ─────────────────────────────────────────────────────────────────
    # Backup & Rollback
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def generate_rollback_token() -> str:
        return str(uuid.uuid4())

    async def create_backup(
        self,
        original_path: Path | str,
        token: str | None = None,
        kind: OperationKind = "write",
    ) -> str:
        """Copy ``original_path`` into the backup directory and return the copy's path.

        Returns ``""`` without registering anything when the file does not exist.
        Only registers a rollback entry when ``token`` is given.
        """
        if token is not None and (not token or Path(token).name != token):
            raise ValidationError.for_field("rollbackToken", token, "a non-empty token without path separators")
        backup_dir = await self._ensure_dir()
        original = Path(original_path)
        suffix = token or datetime.now(tz=UTC).isoformat().replace(":", "-").replace(".", "-")
        backup_path = backup_dir / f"{original.name}{BACKUP_MARKER}{suffix}"
        try:
            await asyncio.to_thread(shutil.copyfile, original, backup_path)
        except FileNotFoundError:
            log.debug("no backup needed, file does not exist", original_path=str(original))
            return ""
        except OSError as e:
            raise FileSystemError("create backup for", str(original), e) from e

        log.debug("backup created", original_path=str(original), backup_path=str(backup_path), token=token)
        if token:
            self._operations[token] = RollbackOperation(
                token=token, original_path=original, backup_path=backup_path, kind=kind)
        return str(backup_path)

    async def perform_rollback(self, token: str) -> list[str]:
        """Restore the file registered under ``token`` and consume the token.

        On failure the entry stays registered so the rollback can be retried.
        """
        self._require_initialized()
        if (op := self._operations.get(token)) is None:
            raise ResourceNotFoundError("Rollback token", token)
        try:
            await asyncio.to_thread(op.original_path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, op.backup_path, op.original_path)
            await asyncio.to_thread(op.backup_path.unlink)
        except OSError as e:
            raise FileSystemError("rollback", str(op.original_path), e) from e
        del self._operations[token]
        log.info("file restored from backup", original_path=str(op.original_path), token=token, kind=op.kind)
        return [str(op.original_path)]

    async def simulate_file_operation(
        self,
        target_path: Path | str,
        kind: OperationKind,
        backup: bool = False,
    ) -> SimulationResult:
        """Report whether ``kind`` would overwrite an existing file and whether a backup would be made."""
        target = Path(target_path)
        try:
            exists = await asyncio.to_thread(_exists, target)
        except OSError as e:
            raise FileSystemError("inspect", str(target), e) from e
        return SimulationResult(
            would_overwrite=exists,
            backup_would_be_created=exists and backup,
            target_path=str(target),
        )

    # ─────────────────────────────────────────────────────────────────
    # Retention
    # ─────────────────────────────────────────────────────────────────

    async def cleanup_old_backups(self, now: float | None = None) -> int:
        """Delete backups older than max_age or beyond the newest max_count. Returns the number deleted.

        Files are visited oldest first. A file that cannot be removed is logged and skipped.
        """
        backup_dir = self.backup_dir
        now = time.time() if now is None else now
        try:
            entries = await asyncio.to_thread(_list_backups, backup_dir)
        except OSError as e:
            log.warning("failed to list backups", backup_dir=str(backup_dir), error=str(e))
            return 0

        excess = len(entries) - self._max_count
        deleted = 0
        for index, (path, mtime) in enumerate(entries):
            age = now - mtime
            if age > self._max_age or index < excess:
                try:
                    await asyncio.to_thread(path.unlink)
                except OSError as e:
                    log.warning("failed to delete old backup", path=str(path), error=str(e))
                    continue
                deleted += 1
                log.debug("deleted old backup", path=str(path), age_seconds=round(age, 1))
        if deleted:
            log.info("cleaned up old backups", deleted=deleted)
        return deleted

    # ─────────────────────────────────────────────────────────────────
    # Registry Inspection
    # ─────────────────────────────────────────────────────────────────

    def get_rollback_info(self, token: str) -> RollbackOperation | None:
        return self._operations.get(token)

    def list_rollback_tokens(self) -> list[str]:
        return list(self._operations)

    def clear(self) -> None:
        """Forget every registered token. Backup files are left for cleanup."""
        self._operations.clear()

    def __repr__(self) -> str:
        return f"BackupManager(backup_dir={self._backup_dir}, tokens={len(self._operations)})"


def _list_backups(backup_dir: Path) -> list[tuple[Path, float]]:
    """Backup files with their mtimes, oldest first. A missing directory has none."""
    if not backup_dir.is_dir():
        return []
    found: list[tuple[Path, float]] = []
    for entry in os.scandir(backup_dir):
        if BACKUP_MARKER in entry.name and entry.is_file():
            try:
                found.append((Path(entry.path), entry.stat().st_mtime))
            except FileNotFoundError:
                continue
    return sorted(found, key=lambda item: item[1])
