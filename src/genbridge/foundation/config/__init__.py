"""Configuration for genbridge."""

from .settings import (
    CONFIG_DIR,
    CONFIG_FILE,
    MAX_SEARCH_DEPTH,
    BackupSettings,
    ConfigurationManager,
    EnvironmentOverrides,
    LoggingSettings,
    ServerSettings,
)

__all__ = [
    "ServerSettings", "LoggingSettings", "BackupSettings", "EnvironmentOverrides",
    "ConfigurationManager", "CONFIG_DIR", "CONFIG_FILE", "MAX_SEARCH_DEPTH",
]
