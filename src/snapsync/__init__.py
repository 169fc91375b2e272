from ._types import BackupMode, ChecksumAlgo, TransferAction, FileMeta, Snapshot, TransferItem, Plan, Result
from .endpoint import Endpoint, EndpointType, SSHOptions, parse_endpoint
from .config import BackupConfig, default_snapshot_name
from .exceptions import (
    SnapSyncError, ConfigError, ScanError, TransferError, VerificationError,
    HashUnavailableError, TransferIncompleteError, CancelledError, PlanMergeError, StoreError,
)
from .fs import FileSystem, RemoteHashFS, open_fs
from ._exclude import ExcludeFilter
from .store import SnapshotStore
from .plan import build_plan, should_skip
from .checkpoint import Checkpoint
from .executor import TransferExecutor
from .core import RunReport, merge_snapshot, run

__all__ = [
    "BackupMode", "ChecksumAlgo", "TransferAction", "FileMeta", "Snapshot", "TransferItem", "Plan", "Result",
    "Endpoint", "EndpointType", "SSHOptions", "parse_endpoint",
    "BackupConfig", "default_snapshot_name",
    "SnapSyncError", "ConfigError", "ScanError", "TransferError", "VerificationError",
    "HashUnavailableError", "TransferIncompleteError", "CancelledError", "PlanMergeError", "StoreError",
    "FileSystem", "RemoteHashFS", "open_fs",
    "ExcludeFilter",
    "SnapshotStore",
    "build_plan", "should_skip",
    "Checkpoint",
    "TransferExecutor",
    "RunReport", "merge_snapshot", "run",
]
