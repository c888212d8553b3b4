"""JSON-lines logging for the collector and the serving API."""

import json
import sys
import traceback
from datetime import UTC, datetime
from enum import IntEnum
from pathlib import Path
from typing import Any

from src.utils.trace_context import get_current_trace


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, name: str | None) -> "LogLevel":
        """Level by name; unknown names map to INFO."""
        try:
            return cls[(name or "INFO").upper()]
        except KeyError:
            return cls.INFO


def _configured_level() -> str:
    # Deferred import: config itself may log while loading
    from src.utils.config import config

    return config.logging.level


def exception_details(exception: BaseException) -> dict[str, str]:
    """Type, message and formatted traceback of an exception."""
    return {
        "type": type(exception).__name__,
        "message": str(exception),
        "stack_trace": "".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        ),
    }


class StructuredLogger:
    """
    Writes one JSON object per line to stdout and, optionally, a file.

    Every entry carries ``timestamp``, ``level``, ``component`` and
    ``message``. When a collection cycle is in progress its trace ID is
    added to ``context`` unless the caller supplied one.
    """

    def __init__(
        self,
        component: str,
        file_path: str | None = None,
        min_level: str | None = None,
    ):
        """
        Args:
            component: Name written into every entry
            file_path: Also append entries to this file
            min_level: Drop entries below this level (defaults to LOG_LEVEL)
        """
        self.component = component
        self.file_path = file_path
        self.min_level = LogLevel.parse(min_level or _configured_level())
        if file_path:
            Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    def build_entry(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level.name,
            "component": self.component,
            "message": message,
        }

        merged = dict(context or {})
        trace_id = get_current_trace()
        if trace_id:
            merged.setdefault("trace_id", trace_id)
        if merged:
            entry["context"] = merged

        if exception is not None:
            entry["exception"] = exception_details(exception)
        return entry

    def _write(self, line: str) -> None:
        try:
            sys.stdout.write(line + "\n")
            if self.file_path:
                with open(self.file_path, "a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except OSError as e:
            sys.stderr.write(f"Failed to write log: {e}\n")

    def log(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """
        Emit an entry at a named level.

        Args:
            level: DEBUG, INFO, WARNING, ERROR or CRITICAL; anything else is INFO
            message: Log message
            context: Extra fields for the ``context`` object
            exception: Exception to describe under ``exception``
        """
        parsed = LogLevel.parse(level)
        if parsed < self.min_level:
            return
        entry = self.build_entry(parsed, message, context, exception)
        # datetimes, enums and other non-JSON values are stringified
        self._write(json.dumps(entry, default=str))

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("DEBUG", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("INFO", message, context)

    def warning(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("WARNING", message, context)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        self.log("ERROR", message, context, exception)

    def critical(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        self.log("CRITICAL", message, context, exception)
