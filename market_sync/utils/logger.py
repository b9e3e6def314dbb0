"""Structured logging module with JSON output support."""

import json
import sys
import threading
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

# Shared by every logger so lines from worker threads never interleave
_write_lock = threading.Lock()

# Process defaults applied to loggers created without explicit settings
_defaults: dict[str, Any] = {"level": "INFO", "file_path": None}


def configure_logging(level: str = "INFO", file_path: str | None = None) -> None:
    """
    Set the level and log file used by loggers without explicit settings.

    Args:
        level: Minimum level to emit
        file_path: Optional path to also write logs to
    """
    _defaults["level"] = level.upper()
    _defaults["file_path"] = file_path


class StructuredLogger:
    """
    Logger that outputs JSON-formatted log entries.

    Settings left unset follow ``configure_logging``, including for loggers
    created at import time before the process configuration is applied.
    """

    def __init__(self, component: str, file_path: str | None = None, level: str | None = None):
        """
        Initialize the structured logger.

        Args:
            component: Name of the component using this logger
            file_path: Optional path to write logs to file
            level: Minimum level to emit (defaults to the configured process level)
        """
        self.component = component
        self._file_path = file_path
        self._level = level.upper() if level else None

    @property
    def file_path(self) -> str | None:
        return self._file_path or _defaults["file_path"]

    @property
    def level(self) -> str:
        return self._level or _defaults["level"]

    def is_enabled_for(self, level: str) -> bool:
        """Check whether entries at the given level are emitted."""
        return LEVELS.get(level.upper(), 20) >= LEVELS.get(self.level, 20)

    def _format_log_entry(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: dict[str, Any] | None = None,
    ) -> str:
        """
        Format a log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            message: Log message
            context: Optional context fields
            exception: Optional exception details

        Returns:
            JSON-formatted log entry
        """
        entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level,
            "component": self.component,
            "thread": threading.current_thread().name,
            "message": message,
        }

        if context:
            entry["context"] = context

        if exception:
            entry["exception"] = exception

        return json.dumps(entry, default=str)

    def _write_log(self, log_entry: str) -> None:
        """
        Write log entry to stdout and optional file.

        Args:
            log_entry: JSON-formatted log entry
        """
        with _write_lock:
            try:
                print(log_entry, file=sys.stdout)
                file_path = self.file_path
                if file_path:
                    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
                    with open(file_path, "a") as f:
                        f.write(log_entry + "\n")
            except OSError as e:
                print(f"Failed to write log: {e}", file=sys.stderr)

    def _emit(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: Exception | None = None,
    ) -> None:
        if not self.is_enabled_for(level):
            return

        exc_dict = None
        if exception:
            exc_dict = {
                "type": type(exception).__name__,
                "message": str(exception),
                "stack_trace": "".join(
                    traceback.format_exception(type(exception), exception, exception.__traceback__)
                ),
            }

        self._write_log(self._format_log_entry(level, message, context, exc_dict))

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a debug message."""
        self._emit("DEBUG", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Log an info message."""
        self._emit("INFO", message, context)

    def warning(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a warning message."""
        self._emit("WARNING", message, context)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: Exception | None = None,
    ) -> None:
        """Log an error message with optional exception details."""
        self._emit("ERROR", message, context, exception)

