"""Server configuration from a project file plus environment overrides.

Resolution order, later wins:

1. Defaults (``logging: {level: info, format: json}``, 7-day/100-file backup retention)
2. ``.genbridge/config.json``, found by walking up from the start directory
3. ``GENBRIDGE_LOGGING_LEVEL`` / ``GENBRIDGE_LOGGING_FORMAT`` environment variables

A missing or malformed file yields defaults; an invalid environment value is
ignored. Neither case is an error.

Example:
    >>> manager = ConfigurationManager(Path.cwd())
    >>> manager.settings.logging.level
    'info'

    # Or with environment variables:
    # GENBRIDGE_LOGGING_LEVEL=debug
    # GENBRIDGE_LOGGING_FORMAT=text
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, get_args

import orjson
from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from genbridge.runtime.observability import get_logger

log = get_logger("genbridge.config")

LogLevel = Literal["debug", "info", "warn", "error"]
LogFormat = Literal["json", "text"]

CONFIG_DIR = ".genbridge"
CONFIG_FILE = "config.json"
MAX_SEARCH_DEPTH = 10

DEFAULT_BACKUP_DIR = f"{CONFIG_DIR}/backups"
DEFAULT_MAX_BACKUP_AGE = 7 * 24 * 60 * 60.0
DEFAULT_MAX_BACKUPS = 100


class LoggingSettings(BaseModel):
    """Log verbosity and output format."""

    model_config = ConfigDict(extra="ignore")

    level: LogLevel = "info"
    format: LogFormat = "json"


class BackupSettings(BaseModel):
    """Where backups live and how long they are kept."""

    model_config = ConfigDict(extra="ignore")

    directory: str = Field(default=DEFAULT_BACKUP_DIR, min_length=1,
                           description="Backup directory, relative to the project root")
    max_age_seconds: PositiveFloat = Field(default=DEFAULT_MAX_BACKUP_AGE, description="Delete backups older than this")
    max_count: PositiveInt = Field(default=DEFAULT_MAX_BACKUPS, description="Keep at most this many backups")


class ServerSettings(BaseModel):
    """Root of the configuration tree, mirroring ``config.json``."""

    model_config = ConfigDict(extra="ignore")

    name: str = "genbridge"
    version: str = "0.1.0"
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)


class EnvironmentOverrides(BaseSettings):
    """Raw environment values. Kept as strings so bad values can be dropped instead of failing."""

    model_config = SettingsConfigDict(env_prefix="GENBRIDGE_", extra="ignore")

    logging_level: str | None = None
    logging_format: str | None = None
    project_root: str | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Manager
# ─────────────────────────────────────────────────────────────────────────────


class ConfigurationManager:
    """Discovers, loads and caches ServerSettings for one project.

    One instance per server context; nothing is cached at module level.
    """

    __slots__ = ("_start", "_settings", "_path")

    def __init__(self, start: Path | str | None = None) -> None:
        self._start = Path(start) if start is not None else Path.cwd()
        self._settings: ServerSettings | None = None
        self._path: Path | None = None

    @property
    def settings(self) -> ServerSettings:
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    @property
    def config_path(self) -> Path | None:
        """Config file used by the last load, if any."""
        return self._path

    def find_config_file(self) -> Path | None:
        """Nearest ``.genbridge/config.json`` at or above the start directory."""
        current = self._start.resolve()
        for _ in range(MAX_SEARCH_DEPTH):
            if (candidate := current / CONFIG_DIR / CONFIG_FILE).is_file():
                return candidate
            if current.parent == current:
                break
            current = current.parent
        return None

    def project_root(self) -> Path:
        """``GENBRIDGE_PROJECT_ROOT``, else the directory holding the config dir, else the start directory."""
        if root := EnvironmentOverrides().project_root:
            return Path(root).resolve()
        if (found := self.find_config_file()) is not None:
            return found.parent.parent
        return self._start.resolve()

    def load(self) -> ServerSettings:
        """Read file and environment. Never raises."""
        self._path = self.find_config_file()
        settings = self._read_file(self._path) if self._path else ServerSettings()
        return _apply_environment(settings, EnvironmentOverrides())

    def reload(self) -> ServerSettings:
        self._settings = self.load()
        return self._settings

    def _read_file(self, path: Path) -> ServerSettings:
        try:
            return ServerSettings.model_validate(orjson.loads(path.read_bytes()))
        except (OSError, orjson.JSONDecodeError, PydanticValidationError) as e:
            log.warning("invalid config file, using defaults", path=str(path), error=str(e))
            return ServerSettings()


def _apply_environment(settings: ServerSettings, env: EnvironmentOverrides) -> ServerSettings:
    overrides: dict[str, str] = {}
    for key, value, allowed in (("level", env.logging_level, get_args(LogLevel)),
                                ("format", env.logging_format, get_args(LogFormat))):
        if value is None:
            continue
        if (normalized := value.strip().lower()) in allowed:
            overrides[key] = normalized
        else:
            log.warning("ignoring invalid environment override", setting=f"logging.{key}", value=value)
    if not overrides:
        return settings
    return settings.model_copy(update={"logging": settings.logging.model_copy(update=overrides)})
