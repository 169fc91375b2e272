"""SnapshotStore: versioned snapshot records inside the destination tree.

Layout (relative to the destination root)::

    .snapsync/
        snapshots/<name>.json   one record per snapshot name
        latest                  name of the latest completed snapshot
        pending                 name of the in-progress snapshot, if any
        logs/backup-<name>.log  run logs

A record is always written before the pointer that names it.  The two
writes are not transactional: a crash between them leaves a record that
no pointer references yet, never a pointer to a missing record.
"""

from __future__ import annotations

import json
import posixpath
from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from ._types import Snapshot, to_utc
from .config import validate_snapshot_name
from .exceptions import ConfigError, StoreError

if TYPE_CHECKING:
    from .fs import FileSystem

META_DIR = ".snapsync"
SNAPSHOT_DIR = posixpath.join(META_DIR, "snapshots")
LATEST_POINTER = posixpath.join(META_DIR, "latest")
PENDING_POINTER = posixpath.join(META_DIR, "pending")
LOG_DIR = posixpath.join(META_DIR, "logs")


def record_path(name: str) -> str:
    return posixpath.join(SNAPSHOT_DIR, f"{name}.json")


def log_path(name: str) -> str:
    return posixpath.join(LOG_DIR, f"backup-{name}.log")


class SnapshotStore:
    """Reads and writes :class:`~snapsync._types.Snapshot` records through a FileSystem."""

    def __init__(self, fs: FileSystem):
        self._fs = fs

    def __repr__(self) -> str:
        return f"SnapshotStore({self._fs!r})"

    # ------------------------------------------------------------------
    # Raw I/O
    # ------------------------------------------------------------------

    def _read(self, rel: str) -> bytes | None:
        """Return the bytes at *rel*, or ``None`` if it does not exist."""
        try:
            with self._fs.open(rel) as f:
                return f.read()
        except FileNotFoundError:
            return None

    def _write(self, rel: str, data: bytes) -> None:
        self._fs.mkdir_all(posixpath.dirname(rel))
        with self._fs.create(rel, 0o644) as f:
            f.write(data)

    def _read_pointer(self, rel: str) -> str | None:
        data = self._read(rel)
        if data is None:
            return None
        name = data.decode("utf-8").strip()
        if not name:
            raise StoreError(f"Snapshot pointer {rel} is empty")
        return name

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, name: str) -> Snapshot | None:
        """Load the snapshot called *name*, or ``None`` if there is none."""
        try:
            validate_snapshot_name(name)
        except ConfigError as exc:
            raise StoreError(str(exc)) from exc
        data = self._read(record_path(name))
        if data is None:
            return None
        try:
            return Snapshot.from_dict(json.loads(data))
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Corrupt snapshot record {name}: {exc}") from exc

    def load_latest(self) -> Snapshot | None:
        """Load the snapshot the latest pointer names."""
        name = self._read_pointer(LATEST_POINTER)
        if name is None:
            return None
        return self.load(name)

    def load_pending(self) -> Snapshot | None:
        """Load the in-progress snapshot, if a run was interrupted.

        A pointer whose record is already completed (a crash after the
        final save but before the pointer was cleared) counts as no
        pending snapshot.
        """
        name = self._read_pointer(PENDING_POINTER)
        if name is None:
            return None
        snap = self.load(name)
        if snap is not None and snap.completed:
            logger.debug(f"Pending pointer names completed snapshot {name}, ignoring")
            return None
        return snap

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def _write_record(self, snap: Snapshot) -> Snapshot:
        validate_snapshot_name(snap.name)
        snap = replace(
            snap,
            created_at=to_utc(snap.created_at),
            files=dict(snap.files),
        )
        data = json.dumps(snap.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        self._write(record_path(snap.name), data + b"\n")
        return snap

    def save(self, snap: Snapshot) -> None:
        """Write *snap*'s record, then point at it.

        A completed snapshot moves the latest pointer.  An incomplete one
        moves the pending pointer instead, so latest only ever names a
        completed snapshot.
        """
        snap = self._write_record(snap)
        pointer = LATEST_POINTER if snap.completed else PENDING_POINTER
        self._write(pointer, (snap.name + "\n").encode("utf-8"))
        logger.debug(f"Saved snapshot {snap.name} ({len(snap.files)} entries, completed={snap.completed})")

    def save_pending(self, snap: Snapshot) -> None:
        """Write *snap* as the in-progress snapshot (forced ``completed=False``)."""
        self.save(replace(snap, completed=False))

    def clear_pending(self) -> None:
        """Remove the pending pointer; the record itself is kept."""
        self._fs.remove(PENDING_POINTER)
