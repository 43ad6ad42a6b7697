"""Observability for genbridge: structured logging to stderr."""

from .logger import (
    BoundLogger,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogFormat,
    LogLevel,
    LogRenderer,
    MemoryRenderer,
    NoOpRenderer,
    configure_logging,
    get_logger,
    log_context,
    use_renderer,
)

__all__ = [
    "BoundLogger", "LogEntry", "LogRenderer", "LogFormat", "LogLevel",
    "ConsoleRenderer", "JsonRenderer", "NoOpRenderer", "MemoryRenderer",
    "configure_logging", "use_renderer", "get_logger", "log_context",
]
