"""Tests for the built-in project file tools."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson
import pytest

from genbridge.foundation.errors import ErrorCode, PermissionDeniedError, ProtocolError, ValidationError
from genbridge.foundation.registry import ToolRegistry
from genbridge.io.backup import BackupManager
from genbridge.tools import MAX_FILE_SIZE, file_generators, resolve_project_path
from genbridge.tools.files import MAX_DISPLAY_LENGTH


@pytest.fixture
def registry(project: Path, backups: BackupManager) -> ToolRegistry:
    reg = ToolRegistry()
    reg.initialize(file_generators(project, backups))
    return reg


@pytest.fixture
def outside(project: Path, tmp_path: Path) -> Path:
    """A directory outside the project, reachable through the symlink ``project/linkdir``."""
    target = tmp_path / "outside"
    target.mkdir()
    (project / "linkdir").symlink_to(target, target_is_directory=True)
    return target


async def call(registry: ToolRegistry, name: str, arguments: dict[str, Any]) -> Any:
    """Invoke a tool and decode its JSON text, raising its error on failure."""
    tool = registry.get(name)
    assert tool is not None
    result = (await tool.handler(arguments)).unwrap_or_raise()
    text = result.content[0].text
    return orjson.loads(text)


# ═════════════════════════════════════════════════════════════════════════════
# Path Safety
# ═════════════════════════════════════════════════════════════════════════════


class TestPathResolution:
    def test_relative_path_resolves_inside_root(self, project: Path) -> None:
        assert resolve_project_path("src/../a.txt", project) == project / "a.txt"

    def test_empty_path(self, project: Path) -> None:
        with pytest.raises(ProtocolError) as exc:
            resolve_project_path("  ", project)
        assert exc.value.code == ErrorCode.INVALID_PARAMS

    def test_null_byte(self, project: Path) -> None:
        with pytest.raises(ValidationError):
            resolve_project_path("a\0b", project)

    def test_absolute_path(self, project: Path) -> None:
        with pytest.raises(PermissionDeniedError):
            resolve_project_path("/etc/passwd", project)

    def test_escape(self, project: Path) -> None:
        with pytest.raises(PermissionDeniedError):
            resolve_project_path("../outside.txt", project)

    def test_new_file_under_symlinked_directory(self, project: Path, outside: Path) -> None:
        with pytest.raises(PermissionDeniedError, match="symlink"):
            resolve_project_path("linkdir/sub/new.txt", project)

    def test_symlink_inside_root_allowed(self, project: Path) -> None:
        (project / "real").mkdir()
        (project / "alias").symlink_to(project / "real", target_is_directory=True)
        assert resolve_project_path("alias/a.txt", project) == project / "alias" / "a.txt"


def test_builtin_tool_names(registry: ToolRegistry) -> None:
    assert set(registry.get_definitions()) == {"read_file", "write_file", "delete_file", "list_directory", "rollback"}
    schema = registry.get_definitions()["write_file"].to_wire()["inputSchema"]
    assert {"uri", "contents", "dryRun", "rollbackToken"} <= set(schema["properties"])
    assert schema["required"] == ["uri", "contents"]


# ═════════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════════


class TestReadFile:
    @pytest.mark.asyncio
    async def test_reads_text(self, project: Path, registry: ToolRegistry) -> None:
        (project / "notes.txt").write_text("hello\n")
        result = await call(registry, "read_file", {"uri": "notes.txt"})
        assert result == {"contents": "hello\n", "mimeType": "text/plain"}

    @pytest.mark.asyncio
    async def test_binary_is_summarized(self, project: Path, registry: ToolRegistry) -> None:
        (project / "blob").write_bytes(b"\x00\x01\x02")
        result = await call(registry, "read_file", {"uri": "blob"})
        assert result["contents"] == "[Binary file: 3 bytes, MIME type: application/octet-stream]"

    @pytest.mark.asyncio
    async def test_too_large(self, project: Path, registry: ToolRegistry) -> None:
        (project / "big.txt").write_text("x" * (MAX_FILE_SIZE + 1))
        with pytest.raises(ValidationError, match="File too large"):
            await call(registry, "read_file", {"uri": "big.txt"})

    @pytest.mark.asyncio
    async def test_long_text_truncated(self, project: Path, registry: ToolRegistry) -> None:
        (project / "long.txt").write_text("y" * (MAX_DISPLAY_LENGTH + 10))
        contents = (await call(registry, "read_file", {"uri": "long.txt"}))["contents"]
        assert contents.startswith("y" * MAX_DISPLAY_LENGTH)
        assert "[Content truncated" in contents

    @pytest.mark.asyncio
    async def test_missing_file(self, registry: ToolRegistry) -> None:
        with pytest.raises(ProtocolError) as exc:
            await call(registry, "read_file", {"uri": "nope.txt"})
        assert exc.value.code == ErrorCode.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_symlink_escape_denied(self, project: Path, tmp_path: Path, registry: ToolRegistry) -> None:
        secret = tmp_path / "secret.txt"
        secret.write_text("s")
        (project / "link.txt").symlink_to(secret)
        with pytest.raises(PermissionDeniedError):
            await call(registry, "read_file", {"uri": "link.txt"})


# ═════════════════════════════════════════════════════════════════════════════
# Write
# ═════════════════════════════════════════════════════════════════════════════


class TestWriteFile:
    @pytest.mark.asyncio
    async def test_creates_parents(self, project: Path, registry: ToolRegistry) -> None:
        result = await call(registry, "write_file", {"uri": "src/new/file.ts", "contents": "export {}"})
        assert result == {"success": True}
        assert (project / "src" / "new" / "file.ts").read_text() == "export {}"

    @pytest.mark.asyncio
    async def test_backup_then_rollback(self, project: Path, registry: ToolRegistry) -> None:
        target = project / "a.txt"
        target.write_text("before")
        result = await call(registry, "write_file", {"uri": "a.txt", "contents": "after", "backup": True})
        assert target.read_text() == "after"
        assert Path(result["backupPath"]).exists()

        undone = await call(registry, "rollback", {"rollbackToken": result["rollbackToken"]})
        assert undone["restoredFiles"] == [str(target)]
        assert target.read_text() == "before"

    @pytest.mark.asyncio
    async def test_token_alone_rolls_back(self, project: Path, registry: ToolRegistry) -> None:
        target = project / "a.txt"
        target.write_text("v1")
        await call(registry, "write_file", {"uri": "a.txt", "contents": "v2", "backup": True, "rollbackToken": "tok-1"})
        assert target.read_text() == "v2"
        await call(registry, "write_file", {"uri": "a.txt", "contents": "ignored", "rollbackToken": "tok-1"})
        assert target.read_text() == "v1"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, project: Path, registry: ToolRegistry) -> None:
        target = project / "a.txt"
        target.write_text("keep")
        result = await call(registry, "write_file",
                            {"uri": "a.txt", "contents": "new", "dryRun": True, "backup": True})
        assert result["dryRun"] == {"wouldOverwrite": True, "backupWouldBeCreated": True,
                                    "targetPath": str(target)}
        assert target.read_text() == "keep"

    @pytest.mark.asyncio
    async def test_new_file_with_backup_has_no_backup_path(self, registry: ToolRegistry) -> None:
        result = await call(registry, "write_file", {"uri": "fresh.txt", "contents": "x", "backup": True})
        assert "backupPath" not in result
        assert result["rollbackToken"]

    @pytest.mark.asyncio
    async def test_outside_root_denied(self, registry: ToolRegistry) -> None:
        with pytest.raises(PermissionDeniedError):
            await call(registry, "write_file", {"uri": "../x.txt", "contents": "x"})

    @pytest.mark.asyncio
    async def test_symlinked_directory_denied(self, outside: Path, registry: ToolRegistry) -> None:
        with pytest.raises(PermissionDeniedError):
            await call(registry, "write_file", {"uri": "linkdir/pwned.txt", "contents": "x"})
        with pytest.raises(PermissionDeniedError):
            await call(registry, "write_file", {"uri": "linkdir/new/pwned.txt", "contents": "x"})
        assert list(outside.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unknown_argument_rejected(self, registry: ToolRegistry) -> None:
        with pytest.raises(ValidationError):
            await call(registry, "write_file", {"uri": "a.txt", "contents": "x", "mode": "append"})


# ═════════════════════════════════════════════════════════════════════════════
# Delete
# ═════════════════════════════════════════════════════════════════════════════


class TestDeleteFile:
    @pytest.mark.asyncio
    async def test_delete_with_backup_and_restore(self, project: Path, registry: ToolRegistry) -> None:
        target = project / "old.txt"
        target.write_text("data")
        result = await call(registry, "delete_file", {"uri": "old.txt", "backup": True})
        assert not target.exists()
        await call(registry, "rollback", {"rollbackToken": result["rollbackToken"]})
        assert target.read_text() == "data"

    @pytest.mark.asyncio
    async def test_dry_run(self, project: Path, registry: ToolRegistry) -> None:
        target = project / "old.txt"
        target.write_text("data")
        result = await call(registry, "delete_file", {"uri": "old.txt", "dryRun": True})
        assert result["dryRun"]["wouldDelete"] is True
        assert result["dryRun"]["fileSize"] == 4
        assert target.exists()

    @pytest.mark.asyncio
    async def test_symlinked_directory_denied(self, outside: Path, registry: ToolRegistry) -> None:
        victim = outside / "victim.txt"
        victim.write_text("keep")
        with pytest.raises(PermissionDeniedError):
            await call(registry, "delete_file", {"uri": "linkdir/victim.txt"})
        assert victim.read_text() == "keep"

    @pytest.mark.asyncio
    async def test_symlink_to_outside_file_denied(self, project: Path, outside: Path, registry: ToolRegistry) -> None:
        victim = outside / "victim.txt"
        victim.write_text("keep")
        (project / "alias.txt").symlink_to(victim)
        with pytest.raises(PermissionDeniedError):
            await call(registry, "delete_file", {"uri": "alias.txt"})
        assert victim.exists()

    @pytest.mark.asyncio
    async def test_directory_rejected(self, project: Path, registry: ToolRegistry) -> None:
        (project / "dir").mkdir()
        with pytest.raises(ProtocolError) as exc:
            await call(registry, "delete_file", {"uri": "dir"})
        assert exc.value.code == ErrorCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_unknown_token(self, registry: ToolRegistry) -> None:
        with pytest.raises(ProtocolError) as exc:
            await call(registry, "rollback", {"rollbackToken": "never-issued"})
        assert exc.value.code == ErrorCode.RESOURCE_NOT_FOUND


# ═════════════════════════════════════════════════════════════════════════════
# List
# ═════════════════════════════════════════════════════════════════════════════


class TestListDirectory:
    @pytest.mark.asyncio
    async def test_flat_listing(self, project: Path, registry: ToolRegistry) -> None:
        (project / "src").mkdir()
        (project / "src" / "main.py").write_text("print()")
        (project / "README.md").write_text("x")
        result = await call(registry, "list_directory", {})
        assert result["totalCount"] == 2
        names = {e["name"]: e for e in result["entries"]}
        assert names["src"]["type"] == "directory"
        assert "children" not in names["src"]
        assert names["README.md"]["size"] == 1

    @pytest.mark.asyncio
    async def test_recursive_listing(self, project: Path, registry: ToolRegistry) -> None:
        (project / "a" / "b").mkdir(parents=True)
        (project / "a" / "b" / "c.txt").write_text("c")
        result = await call(registry, "list_directory", {"uri": "a", "recursive": True, "maxDepth": 2})
        (b,) = result["entries"]
        assert b["uri"] == "a/b"
        assert b["children"][0]["uri"] == "a/b/c.txt"

    @pytest.mark.asyncio
    async def test_not_a_directory(self, project: Path, registry: ToolRegistry) -> None:
        (project / "f.txt").write_text("x")
        with pytest.raises(ProtocolError) as exc:
            await call(registry, "list_directory", {"uri": "f.txt"})
        assert exc.value.code == ErrorCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_symlinked_directory_denied(self, outside: Path, registry: ToolRegistry) -> None:
        (outside / "secret.txt").write_text("s")
        with pytest.raises(PermissionDeniedError):
            await call(registry, "list_directory", {"uri": "linkdir"})

    @pytest.mark.asyncio
    async def test_recursive_listing_does_not_follow_symlinks(self, outside: Path, registry: ToolRegistry) -> None:
        (outside / "secret.txt").write_text("s")
        result = await call(registry, "list_directory", {"recursive": True})
        (link,) = result["entries"]
        assert link["name"] == "linkdir"
        assert link["type"] == "file"
        assert "children" not in link
