"""Shared fixtures: captured logs, an isolated project directory, sample generators."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from pydantic import BaseModel, Field

from genbridge.foundation.config import ConfigurationManager
from genbridge.foundation.context import ServerContext
from genbridge.foundation.core import FunctionGenerator, generator
from genbridge.io.backup import BackupManager
from genbridge.runtime.observability import MemoryRenderer, NoOpRenderer, use_renderer


@pytest.fixture(autouse=True)
def logs() -> Iterator[MemoryRenderer]:
    """Capture every log entry emitted during the test."""
    renderer = use_renderer(MemoryRenderer())
    yield renderer
    use_renderer(NoOpRenderer(), level="error")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("GENBRIDGE_LOGGING_LEVEL", "GENBRIDGE_LOGGING_FORMAT", "GENBRIDGE_PROJECT_ROOT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def backups(project: Path) -> BackupManager:
    manager = BackupManager(max_age=3600, max_count=10)
    manager.initialize(project)
    return manager


@pytest.fixture
def context(project: Path) -> ServerContext:
    return ServerContext(ConfigurationManager(project), project)


class ApiParams(BaseModel):
    name: str = Field(description="Resource name")
    methods: list[str] = Field(default_factory=lambda: ["GET"], description="HTTP methods")
    auth: bool = False


@pytest.fixture
def api_generator() -> FunctionGenerator:
    async def create_api(name: str, methods: list[str], auth: bool) -> dict[str, object]:
        return {"created": f"src/api/{name}.ts", "methods": methods, "auth": auth}

    return FunctionGenerator(create_api, name="api", description="Generate an API endpoint",
                             parameter_schema=ApiParams)


@pytest.fixture
def feature_generator() -> FunctionGenerator:
    @generator(name="feature")
    def create_feature(path: str, force: bool = False) -> str:
        """Scaffold a feature directory.

        Args:
            path: Feature path relative to the project root
            force: Overwrite existing files
        """
        return f"created {path}"

    return create_feature
