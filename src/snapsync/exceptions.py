"""Exceptions for snapsync."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._types import Result


class SnapSyncError(Exception):
    """Base class for all snapsync errors."""


class ConfigError(SnapSyncError):
    """Raised for missing or invalid endpoints and unsupported pairings.

    Always raised before any I/O takes place.
    """


class ScanError(SnapSyncError):
    """Raised when the source tree cannot be listed."""


class TransferError(SnapSyncError):
    """A single plan item failed (open, create, copy, or verify)."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class VerificationError(TransferError):
    """Source and destination digests differ after a copy."""

    def __init__(self, path: str):
        super().__init__(path, "verification failed")


class HashUnavailableError(SnapSyncError):
    """The filesystem cannot compute the requested digest at its location.

    The executor treats this as a silent signal to hash locally.
    """


class TransferIncompleteError(SnapSyncError):
    """Execution finished with per-item failures.

    Items that succeeded are still valid; they are available on
    :attr:`result` together with the failures.
    """

    def __init__(self, message: str, result: Result):
        super().__init__(message)
        self.result = result


class CancelledError(TransferIncompleteError):
    """Execution stopped at an item boundary because cancellation was requested."""

    def __init__(self, result: Result):
        super().__init__("backup cancelled", result)


class PlanMergeError(SnapSyncError):
    """A skipped path has no baseline entry to carry over."""


class StoreError(SnapSyncError):
    """A snapshot record or pointer exists but cannot be used."""
