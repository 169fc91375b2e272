"""Checkpoint: periodic persistence of in-progress results for resume."""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from ._types import FileMeta, Snapshot

if TYPE_CHECKING:
    from .store import SnapshotStore

FLUSH_INTERVAL = 3.0


class Checkpoint:
    """Overlay of confirmed file metadata, flushed to the pending slot.

    Starts as a copy of the baseline's file map.  :meth:`record` overlays
    each confirmed entry and persists at most once per *interval* seconds;
    :meth:`flush` persists unconditionally when anything changed.  Both
    serialize through one lock, so completion callbacks may call them from
    any thread.

    Args:
        store: Where pending snapshots are written.
        baseline: Snapshot whose file map seeds the overlay, or ``None``.
        name: Name of the run's snapshot.
        source_root: Display name of the source endpoint.
        dest_root: Display name of the destination endpoint.
        interval: Minimum seconds between timer-driven flushes.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        store: SnapshotStore,
        baseline: Snapshot | None,
        name: str,
        source_root: str,
        dest_root: str,
        *,
        interval: float = FLUSH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._files: dict[str, FileMeta] = dict(baseline.files) if baseline else {}
        self._snapshot = Snapshot(
            name=name,
            created_at=datetime.now(timezone.utc),
            source_root=source_root,
            dest_root=dest_root,
            completed=False,
        )
        self._interval = interval
        self._clock = clock
        self._last_flush = clock()
        self._dirty = False
        self._lock = threading.Lock()

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def files(self) -> dict[str, FileMeta]:
        """Return a copy of the current file map."""
        with self._lock:
            return dict(self._files)

    def record(self, meta: FileMeta) -> None:
        """Overlay *meta*; persist if the flush interval has elapsed."""
        with self._lock:
            self._files[meta.path] = meta
            self._dirty = True
            if self._clock() - self._last_flush >= self._interval:
                self._flush_locked()

    def flush(self) -> None:
        """Persist now, unless nothing changed since the last persist."""
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        if not self._dirty:
            return
        snap = replace(self._snapshot, files=dict(self._files), completed=False)
        try:
            self._store.save_pending(snap)
        finally:
            self._last_flush = self._clock()
        self._dirty = False
