"""Transfer progress reporting."""

from __future__ import annotations

import sys
from typing import Protocol

import click

_MAX_DESC_LEN = 40


class Progress(Protocol):
    """Receives progress events from the executor."""

    def start(self, total_files: int, total_bytes: int) -> None: ...

    def next_file(self, path: str, size: int) -> None: ...

    def add_bytes(self, n: int) -> None: ...

    def finish(self) -> None: ...


class NoopProgress:
    """Discards all progress events."""

    def start(self, total_files: int, total_bytes: int) -> None:
        pass

    def next_file(self, path: str, size: int) -> None:
        pass

    def add_bytes(self, n: int) -> None:
        pass

    def finish(self) -> None:
        pass


def shorten_path(path: str, limit: int = _MAX_DESC_LEN) -> str:
    """Trim *path* from the left to at most *limit* characters."""
    if len(path) <= limit:
        return path
    return "..." + path[-(limit - 3):]


class BarProgress:
    """Byte-based progress bar rendered with ``click.progressbar``."""

    def __init__(self, file=None):
        self._file = file or sys.stderr
        self._bar = None
        self._total_files = 0
        self._done_files = 0

    def start(self, total_files: int, total_bytes: int) -> None:
        self._total_files = total_files
        self._done_files = 0
        self._bar = click.progressbar(
            length=max(total_bytes, 1),
            label=self._label(),
            file=self._file,
            item_show_func=lambda item: item,
        )
        self._bar.__enter__()

    def _label(self) -> str:
        return f"[{self._done_files}/{self._total_files}]"

    def next_file(self, path: str, size: int) -> None:
        if self._bar is None:
            return
        self._done_files += 1
        self._bar.label = self._label()
        self._bar.update(0, current_item=shorten_path(path))

    def add_bytes(self, n: int) -> None:
        if self._bar is None or n <= 0:
            return
        self._bar.update(n)

    def finish(self) -> None:
        if self._bar is None:
            return
        self._bar.__exit__(None, None, None)
        self._bar = None
