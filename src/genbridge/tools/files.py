"""Built-in file generators confined to the project root.

Every path is relative to the project root and is rejected if it is absolute,
contains a null byte, or resolves outside the root. Mutations go through the
BackupManager: ``backup=true`` or a ``rollbackToken`` snapshots the file first,
``dryRun=true`` only reports what would happen, and a ``rollbackToken`` without
either flag undoes the mutation registered under that token.
"""

from __future__ import annotations

import asyncio
import mimetypes
import os
import stat
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from genbridge.foundation.core import Generator
from genbridge.foundation.errors import ErrorFactory, FileSystemError, PermissionDeniedError, ValidationError
from genbridge.io.backup import BackupManager, SimulationResult
from genbridge.runtime.observability import get_logger

log = get_logger("genbridge.tools.files")

MAX_FILE_SIZE = 400 * 1024
MAX_DISPLAY_LENGTH = 50_000
_TEXT_TYPES = ("text/", "application/json", "application/javascript", "application/typescript",
               "application/xml", "application/yaml", "application/x-yaml", "application/toml")
_SNIFF_BYTES = 8192


# ─────────────────────────────────────────────────────────────────────────────
# Path Safety
# ─────────────────────────────────────────────────────────────────────────────


def _within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def resolve_project_path(uri: str, root: Path) -> Path:
    """Absolute path for ``uri`` inside ``root``.

    The path is checked twice: as written, and with symlinks resolved. Missing
    trailing components are resolved through their nearest existing parent, so
    a new file under a symlinked directory is caught too.

    Raises:
        ProtocolError: INVALID_PARAMS for an empty path
        ValidationError: null byte in the path
        PermissionDeniedError: absolute path, or one that escapes the root
    """
    if not isinstance(uri, str) or not uri.strip():
        raise ErrorFactory.invalid_params("File path must be a non-empty string")
    if "\0" in uri:
        raise ValidationError("Null byte detected in file path")
    if os.path.isabs(uri):
        raise PermissionDeniedError("access", f"absolute path '{uri}'; use paths relative to the project root")
    resolved = Path(os.path.normpath(root / uri))
    if not _within(resolved, root):
        raise PermissionDeniedError("access", f"'{uri}' outside the project directory")
    if not _within(Path(os.path.realpath(resolved)), Path(os.path.realpath(root))):
        raise PermissionDeniedError("access", f"'{uri}': symlink escapes the project directory")
    return resolved


def _is_text(mime_type: str) -> bool:
    return mime_type.startswith(_TEXT_TYPES)


def _guess_mime(path: Path) -> str:
    """MIME type from the extension, else ``text/plain`` if the head has no NUL bytes."""
    if guessed := mimetypes.guess_type(path.name)[0]:
        return guessed
    with path.open("rb") as fh:
        return "application/octet-stream" if b"\0" in fh.read(_SNIFF_BYTES) else "text/plain"


def _atomic_write(path: Path, contents: str) -> None:
    tmp = path.with_name(f"{path.name}.tmp.{time.time_ns()}")
    try:
        tmp.write_text(contents, encoding="utf-8")
        os.replace(tmp, path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise FileSystemError("write", str(path), e) from e


# ─────────────────────────────────────────────────────────────────────────────
# Parameter & Result Models
# ─────────────────────────────────────────────────────────────────────────────

_WIRE = ConfigDict(populate_by_name=True, extra="forbid")


class ReadFileParams(BaseModel):
    model_config = _WIRE

    uri: str = Field(min_length=1, description="File path relative to the project root")


class ReadFileResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contents: str
    mime_type: str = Field(alias="mimeType")


class WriteFileParams(BaseModel):
    model_config = _WIRE

    uri: str = Field(min_length=1, description="File path relative to the project root")
    contents: str = Field(description="Full new contents of the file")
    mime_type: str | None = Field(default=None, alias="mimeType", description="Informational MIME type")
    backup: bool = Field(default=False, description="Back up the existing file and return a rollback token")
    dry_run: bool = Field(default=False, alias="dryRun", description="Report what would happen without writing")
    rollback_token: str | None = Field(
        default=None, alias="rollbackToken",
        description="Token to register the backup under; alone, undoes the write registered under it",
    )


class DeleteFileParams(BaseModel):
    model_config = _WIRE

    uri: str = Field(min_length=1, description="File path relative to the project root")
    backup: bool = Field(default=False, description="Back up the file and return a rollback token")
    dry_run: bool = Field(default=False, alias="dryRun", description="Report what would happen without deleting")
    rollback_token: str | None = Field(
        default=None, alias="rollbackToken",
        description="Token to register the backup under; alone, restores the file deleted under it",
    )


class DeleteSimulation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    would_delete: bool = Field(default=True, alias="wouldDelete")
    backup_would_be_created: bool = Field(alias="backupWouldBeCreated")
    target_path: str = Field(alias="targetPath")
    file_size: int = Field(alias="fileSize")


class MutationResult(BaseModel):
    """Outcome of a write or delete."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    backup_path: str | None = Field(default=None, alias="backupPath")
    rollback_token: str | None = Field(default=None, alias="rollbackToken")
    dry_run: SimulationResult | DeleteSimulation | None = Field(default=None, alias="dryRun")
    restored_files: list[str] | None = Field(default=None, alias="restoredFiles")


class RollbackParams(BaseModel):
    model_config = _WIRE

    rollback_token: str = Field(min_length=1, alias="rollbackToken", description="Token returned by a write or delete")


class ListDirectoryParams(BaseModel):
    model_config = _WIRE

    uri: str = Field(default=".", min_length=1, description="Directory path relative to the project root")
    recursive: bool = Field(default=False, description="Descend into subdirectories")
    max_depth: int = Field(default=3, ge=1, le=10, alias="maxDepth", description="Recursion limit")


class DirectoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    name: str
    type: Literal["file", "directory"]
    mime_type: str | None = Field(default=None, alias="mimeType")
    size: int | None = None
    modified: str
    children: list[DirectoryEntry] | None = None


class ListDirectoryResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entries: list[DirectoryEntry]
    total_count: int = Field(alias="totalCount")


# ─────────────────────────────────────────────────────────────────────────────
# Generators
# ─────────────────────────────────────────────────────────────────────────────


class _ProjectFileGenerator:
    """Shared state: the resolved project root and the backup manager."""

    __slots__ = ("_root", "_backups")

    def __init__(self, root: Path | str, backups: BackupManager) -> None:
        self._root = Path(root).resolve()
        self._backups = backups

    async def _resolve(self, uri: str) -> Path:
        return await asyncio.to_thread(resolve_project_path, uri, self._root)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(root={str(self._root)!r})"


class ReadFileGenerator(_ProjectFileGenerator):
    __slots__ = ()
    name = "read_file"
    description = "Read a file from the project directory. Text is returned as-is; binary files are summarized."
    parameter_schema = ReadFileParams

    async def execute(self, args: ReadFileParams) -> ReadFileResult:
        real = Path(await asyncio.to_thread(os.path.realpath, await self._resolve(args.uri)))
        try:
            st = await asyncio.to_thread(os.stat, real)
        except OSError as e:
            raise FileSystemError("read", args.uri, e) from e
        if not stat.S_ISREG(st.st_mode):
            raise ErrorFactory.invalid_params(f"Path is not a file: {args.uri}")
        if st.st_size > MAX_FILE_SIZE:
            raise ValidationError(f"File too large ({st.st_size} bytes). Maximum allowed size is "
                                  f"{MAX_FILE_SIZE} bytes ({MAX_FILE_SIZE // 1024}KB).")
        try:
            mime_type = await asyncio.to_thread(_guess_mime, real)
            if not _is_text(mime_type):
                return ReadFileResult(contents=f"[Binary file: {st.st_size} bytes, MIME type: {mime_type}]",
                                      mime_type=mime_type)
            contents = await asyncio.to_thread(real.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            raise FileSystemError("read", args.uri, e) from e
        if len(contents) > MAX_DISPLAY_LENGTH:
            contents = (f"{contents[:MAX_DISPLAY_LENGTH]}\n\n[Content truncated - file is {len(contents)} "
                        f"characters, showing first {MAX_DISPLAY_LENGTH}]")
        log.debug("file read", uri=args.uri, size=st.st_size, mime_type=mime_type)
        return ReadFileResult(contents=contents, mime_type=mime_type)


class WriteFileGenerator(_ProjectFileGenerator):
    __slots__ = ()
    name = "write_file"
    description = "Write a file in the project directory atomically, with optional backup, dry run and rollback."
    parameter_schema = WriteFileParams

    async def execute(self, args: WriteFileParams) -> MutationResult:
        if args.rollback_token and not args.dry_run and not args.backup:
            restored = await self._backups.perform_rollback(args.rollback_token)
            return MutationResult(rollback_token=args.rollback_token, restored_files=restored)

        path = await self._resolve(args.uri)
        if args.dry_run:
            return MutationResult(dry_run=await self._backups.simulate_file_operation(path, "write", args.backup))

        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise FileSystemError("create directory for", args.uri, e) from e

        token = backup_path = None
        if args.backup or args.rollback_token:
            token = args.rollback_token or self._backups.generate_rollback_token()
            backup_path = await self._backups.create_backup(path, token, "write") or None

        await asyncio.to_thread(_atomic_write, path, args.contents)
        log.info("file written", uri=args.uri, size=len(args.contents), backup=bool(backup_path), token=token)
        return MutationResult(backup_path=backup_path, rollback_token=token)


class DeleteFileGenerator(_ProjectFileGenerator):
    __slots__ = ()
    name = "delete_file"
    description = "Delete a file in the project directory, with optional backup, dry run and rollback."
    parameter_schema = DeleteFileParams

    async def execute(self, args: DeleteFileParams) -> MutationResult:
        if args.rollback_token and not args.dry_run and not args.backup:
            restored = await self._backups.perform_rollback(args.rollback_token)
            return MutationResult(rollback_token=args.rollback_token, restored_files=restored)

        path = await self._resolve(args.uri)
        try:
            st = await asyncio.to_thread(os.stat, path)
        except OSError as e:
            raise FileSystemError("delete", args.uri, e) from e
        if not stat.S_ISREG(st.st_mode):
            raise ErrorFactory.invalid_params(f"Path is not a file: {args.uri}")

        if args.dry_run:
            return MutationResult(dry_run=DeleteSimulation(
                backup_would_be_created=args.backup, target_path=str(path), file_size=st.st_size))

        token = backup_path = None
        if args.backup or args.rollback_token:
            token = args.rollback_token or self._backups.generate_rollback_token()
            backup_path = await self._backups.create_backup(path, token, "delete") or None

        try:
            await asyncio.to_thread(path.unlink)
        except OSError as e:
            raise FileSystemError("delete", args.uri, e) from e
        log.info("file deleted", uri=args.uri, size=st.st_size, backup=bool(backup_path), token=token)
        return MutationResult(backup_path=backup_path, rollback_token=token)


class RollbackGenerator(_ProjectFileGenerator):
    __slots__ = ()
    name = "rollback"
    description = "Undo a write or delete using the rollback token it returned. Each token works once."
    parameter_schema = RollbackParams

    async def execute(self, args: RollbackParams) -> MutationResult:
        restored = await self._backups.perform_rollback(args.rollback_token)
        return MutationResult(rollback_token=args.rollback_token, restored_files=restored)


class ListDirectoryGenerator(_ProjectFileGenerator):
    __slots__ = ()
    name = "list_directory"
    description = "List the entries of a project directory, optionally recursively."
    parameter_schema = ListDirectoryParams

    async def execute(self, args: ListDirectoryParams) -> ListDirectoryResult:
        path = await self._resolve(args.uri)
        if not await asyncio.to_thread(path.is_dir):
            raise ErrorFactory.invalid_params(f"Path is not a directory: {args.uri}")
        depth = args.max_depth if args.recursive else 1
        entries = await asyncio.to_thread(self._scan, path, depth)
        return ListDirectoryResult(entries=entries, total_count=len(entries))

    def _scan(self, directory: Path, depth: int) -> list[DirectoryEntry]:
        """Entries under ``directory``. Symlinks are listed but never followed."""
        entries: list[DirectoryEntry] = []
        try:
            listing = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            raise FileSystemError("list", str(directory), e) from e
        for item in listing:
            try:
                st = item.stat(follow_symlinks=False)
            except OSError as e:
                log.warning("could not stat directory entry", entry=item.path, error=str(e))
                continue
            is_dir = stat.S_ISDIR(st.st_mode)
            item_path = Path(item.path)
            entries.append(DirectoryEntry(
                uri=item_path.relative_to(self._root).as_posix(),
                name=item.name,
                type="directory" if is_dir else "file",
                mime_type=None if is_dir else (mimetypes.guess_type(item.name)[0] or "application/octet-stream"),
                size=None if is_dir else st.st_size,
                modified=datetime.fromtimestamp(st.st_mtime, tz=UTC).isoformat(),
                children=self._scan(item_path, depth - 1) if is_dir and depth > 1 else None,
            ))
        return entries


def file_generators(root: Path | str, backups: BackupManager) -> list[Generator]:
    """The built-in file generators bound to ``root``."""
    return [cls(root, backups) for cls in (ReadFileGenerator, WriteFileGenerator, DeleteFileGenerator,
                                           ListDirectoryGenerator, RollbackGenerator)]
