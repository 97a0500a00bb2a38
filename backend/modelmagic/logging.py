"""structlog setup for the API process."""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from modelmagic.config import settings


class _LogFileTee:
    """Mirror rendered log lines to stdout and to an append-only file.

    Used when LOG_FILE is set so ops can grep a JSON-lines audit of
    transitions. If the file goes away the tee drops it and keeps
    writing to stdout.
    """

    def __init__(self, file_path: str) -> None:
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet at this point
            print(
                f"WARNING: cannot open log file {file_path!r} ({exc}); logging to stdout only",
                file=sys.stderr,
            )

    def _drop_file(self, reason: str) -> None:
        self._file = None
        print(f"WARNING: log file {reason}; file logging disabled", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError):
            self._drop_file("write failed")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._drop_file("flush failed")


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    """Configure structlog: console output in development, JSON lines elsewhere."""
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.environment == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        # JSON output needs tracebacks flattened into the event dict
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    if settings.log_file:
        logger_factory = structlog.PrintLoggerFactory(file=_LogFileTee(settings.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(settings.log_level)),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
