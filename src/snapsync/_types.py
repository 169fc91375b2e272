"""Data structures shared by the planner, executor, and snapshot store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class BackupMode(str, Enum):
    """Backup mode: ``FULL`` mirrors deletions, ``INCREMENTAL`` only adds."""
    FULL = "full"
    INCREMENTAL = "incr"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class ChecksumAlgo(str, Enum):
    """Digest used for end-to-end verification (``NONE`` disables it)."""
    NONE = "none"
    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class TransferAction(str, Enum):
    """Kind of planned operation."""
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"
    MKDIR = "mkdir"
    SKIP = "skip"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @property
    def is_transfer(self) -> bool:
        """``True`` for actions that move file content."""
        return self in (TransferAction.UPLOAD, TransferAction.DOWNLOAD)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def mtime_from_ns(ns: int) -> datetime:
    """Convert an epoch timestamp in nanoseconds to an aware UTC datetime.

    Truncates to microseconds so that the same file yields the same value
    on every scan and after a JSON round-trip.
    """
    seconds, rem = divmod(ns, 1_000_000_000)
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.replace(microsecond=rem // 1000)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_rel(path: str) -> str:
    """Return *path* with forward slashes and no leading ``./`` or ``/``."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.strip("/")


# ---------------------------------------------------------------------------
# File metadata and snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FileMeta:
    """Description of one entry at one point in time.

    Attributes:
        path: Relative path, forward slashes. Unique within a snapshot.
        size: Size in bytes (0 for directories).
        mode: Permission bits (``stat.S_IMODE``).
        mtime: Modification time as an aware UTC datetime.
        checksum: Hex digest, or ``None`` when not computed.
        is_dir: ``True`` for directories.
    """

    path: str
    size: int = 0
    mode: int = 0
    mtime: datetime = datetime(1970, 1, 1, tzinfo=timezone.utc)
    checksum: str | None = None
    is_dir: bool = False

    def to_dict(self) -> dict:
        d = {
            "rel_path": self.path,
            "size": self.size,
            "mode": self.mode,
            "mod_time": to_utc(self.mtime).isoformat(),
            "is_dir": self.is_dir,
        }
        if self.checksum:
            d["checksum"] = self.checksum
        return d

    @classmethod
    def from_dict(cls, d: dict) -> FileMeta:
        return cls(
            path=d["rel_path"],
            size=int(d.get("size", 0)),
            mode=int(d.get("mode", 0)),
            mtime=to_utc(datetime.fromisoformat(d["mod_time"])),
            checksum=d.get("checksum") or None,
            is_dir=bool(d.get("is_dir", False)),
        )


@dataclass
class Snapshot:
    """A named, versioned record of the destination tree.

    Attributes:
        name: Identifier, also the record's file name.
        created_at: Creation time (UTC).
        source_root: Display name of the source endpoint.
        dest_root: Display name of the destination endpoint.
        files: ``{relative_path: FileMeta}``.
        completed: ``False`` for a pending (resumable) snapshot.
    """

    name: str
    created_at: datetime
    source_root: str = ""
    dest_root: str = ""
    files: dict[str, FileMeta] = field(default_factory=dict)
    completed: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "created_at": to_utc(self.created_at).isoformat(),
            "source_root": self.source_root,
            "dest_root": self.dest_root,
            "files": {rel: meta.to_dict() for rel, meta in sorted(self.files.items())},
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Snapshot:
        files = {}
        for rel, raw in (d.get("files") or {}).items():
            meta = FileMeta.from_dict({**raw, "rel_path": raw.get("rel_path") or rel})
            files[rel] = meta
        return cls(
            name=d["name"],
            created_at=to_utc(datetime.fromisoformat(d["created_at"])),
            source_root=d.get("source_root", ""),
            dest_root=d.get("dest_root", ""),
            files=files,
            completed=bool(d.get("completed", False)),
        )


# ---------------------------------------------------------------------------
# Plans and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransferItem:
    """A single planned operation.

    *meta* is the source-side metadata for transfers, mkdirs and skips, and
    the baseline-side metadata for deletes.
    """
    path: str
    meta: FileMeta
    action: TransferAction
    reason: str = ""


@dataclass
class Plan:
    """An ordered sequence of :class:`TransferItem` plus transfer totals.

    Only upload/download items count toward :attr:`total_files` and
    :attr:`total_bytes`.
    """
    items: list[TransferItem] = field(default_factory=list)
    total_files: int = 0
    total_bytes: int = 0

    def add(self, item: TransferItem) -> None:
        self.items.append(item)
        if item.action.is_transfer:
            self.total_files += 1
            self.total_bytes += item.meta.size

    def by_action(self, action: TransferAction) -> list[TransferItem]:
        return [item for item in self.items if item.action == action]

    @property
    def in_sync(self) -> bool:
        """``True`` if every item is a skip."""
        return all(item.action == TransferAction.SKIP for item in self.items)


@dataclass
class Result:
    """Outcome of executing a :class:`Plan`.

    Attributes:
        success: ``{path: FileMeta}`` for confirmed items, with checksum
            populated when verification ran.
        failed: ``{path: exception}`` for items that failed.
    """
    success: dict[str, FileMeta] = field(default_factory=dict)
    failed: dict[str, Exception] = field(default_factory=dict)
