"""Configuration for a single backup run."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ._types import BackupMode, ChecksumAlgo
from .endpoint import Endpoint
from .exceptions import ConfigError

SNAPSHOT_NAME_FORMAT = "%Y%m%dT%H%M%SZ"
LOG_LEVELS = ("debug", "info", "warning", "warn", "error")


def default_snapshot_name(now: datetime | None = None) -> str:
    """Return a UTC timestamp name such as ``20240115T143000Z``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(SNAPSHOT_NAME_FORMAT)


def validate_snapshot_name(name: str) -> str:
    """Reject names that cannot be used as a record file name."""
    if not name or name in (".", ".."):
        raise ConfigError(f"Invalid snapshot name: {name!r}")
    for ch, label in (("/", "slash"), ("\\", "backslash"), ("\n", "newline"), ("\0", "NUL")):
        if ch in name:
            raise ConfigError(f"Invalid snapshot name {name!r}: contains {label}")
    return name


@dataclass
class BackupConfig:
    """Everything a run needs, as resolved from the command line.

    Attributes:
        source: Endpoint to read from.
        dest: Endpoint to write to; also holds the snapshot metadata.
        mode: ``FULL`` deletes destination entries missing from the source.
        checksum: Verification digest, ``NONE`` to skip verification.
        exclude: Glob patterns matched against relative paths and base names.
        exclude_from: File with one exclude pattern per line.
        gitignore: Honour ``.gitignore`` files in a local source tree.
        dry_run: Report the plan without any I/O.
        snapshot_name: Name of the snapshot to write (default: UTC timestamp).
        log_file: Local log file; default is a log inside the destination.
        log_level: debug, info, warning, or error.
        no_progress: Disable the progress bar.
    """
    source: Endpoint
    dest: Endpoint
    mode: BackupMode = BackupMode.INCREMENTAL
    checksum: ChecksumAlgo = ChecksumAlgo.SHA256
    exclude: list[str] = field(default_factory=list)
    exclude_from: str | None = None
    gitignore: bool = False
    dry_run: bool = False
    snapshot_name: str = ""
    log_file: str | None = None
    log_level: str = "info"
    no_progress: bool = False

    def validate(self) -> None:
        """Check endpoint pairing and fill in defaults.

        Raises:
            ConfigError: On a remote-to-remote pair, empty paths, a
                destination inside the source, or an unknown mode, digest,
                log level or snapshot name.
        """
        if self.source.is_remote and self.dest.is_remote:
            raise ConfigError("Remote-to-remote backups are not supported")
        if not self.source.path or not self.dest.path:
            raise ConfigError("Source and destination paths must not be empty")
        if not self.source.is_remote and not self.dest.is_remote:
            src = os.path.abspath(self.source.path)
            dst = os.path.abspath(self.dest.path)
            if os.path.commonpath([src, dst]) == src:
                raise ConfigError("Destination must not be the source or lie inside it")
        if self.gitignore and self.source.is_remote:
            raise ConfigError("--gitignore only applies to a local source")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level}")
        try:
            self.mode = BackupMode(self.mode)
            self.checksum = ChecksumAlgo(self.checksum)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        if not self.snapshot_name:
            self.snapshot_name = default_snapshot_name()
        validate_snapshot_name(self.snapshot_name)
