"""Logging setup (loguru)."""

from __future__ import annotations

import sys
from typing import IO

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {message}"

_LEVEL_ALIASES = {"warn": "warning"}


def parse_level(level: str) -> str:
    """Map a CLI level name (debug/info/warn/warning/error) to loguru's."""
    name = level.strip().lower()
    return _LEVEL_ALIASES.get(name, name).upper()


def configure_logging(level: str = "info", *, stream: IO[str] | None = None) -> int:
    """Replace loguru's default handler with one writing to *stream*.

    Returns the handler id.
    """
    logger.remove()
    return logger.add(stream or sys.stderr, level=parse_level(level), format=LOG_FORMAT)


class LogSink:
    """Attach a binary writer (e.g. a destination log file) as a loguru sink.

    Use as a context manager; the writer is closed when the sink is
    removed.
    """

    def __init__(self, writer, level: str = "info"):
        self._writer = writer
        self._level = parse_level(level)
        self._handler_id: int | None = None

    def _write(self, message: str) -> None:
        self._writer.write(str(message).encode("utf-8"))

    def __enter__(self) -> LogSink:
        self._handler_id = logger.add(self._write, level=self._level, format=LOG_FORMAT)
        return self

    def __exit__(self, *exc_info) -> None:
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None
        self._writer.close()
