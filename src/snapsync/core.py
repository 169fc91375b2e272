"""Run orchestration: one backup from configuration to persisted snapshot."""

from __future__ import annotations

import threading
from contextlib import ExitStack
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from loguru import logger

from ._exclude import ExcludeFilter
from ._logging import LogSink
from ._types import FileMeta, Plan, Result, Snapshot, TransferAction, TransferItem
from .checkpoint import Checkpoint
from .config import BackupConfig
from .exceptions import (
    ConfigError,
    PlanMergeError,
    ScanError,
    SnapSyncError,
    TransferIncompleteError,
)
from .executor import TransferExecutor
from .fs import FileSystem, open_fs
from .plan import build_plan
from .progress import NoopProgress, Progress
from .store import SnapshotStore, log_path


@dataclass
class RunReport:
    """What a run did.

    Attributes:
        plan: The plan that was built.
        result: Execution outcome (``None`` for a dry run).
        snapshot: The persisted snapshot (``None`` for a dry run).
        resumed: ``True`` if the run continued a pending snapshot.
    """
    plan: Plan
    result: Result | None = None
    snapshot: Snapshot | None = None
    resumed: bool = False

    @property
    def dry_run(self) -> bool:
        return self.snapshot is None


class _CheckpointListener:
    """Feeds successful items into a :class:`Checkpoint`; failures are warnings."""

    def __init__(self, checkpoint: Checkpoint):
        self._checkpoint = checkpoint

    def on_success(self, item: TransferItem, meta: FileMeta) -> None:
        try:
            self._checkpoint.record(meta)
        except (OSError, SnapSyncError) as exc:
            logger.warning(f"Could not save progress after {meta.path}: {exc}")


def merge_snapshot(baseline: Snapshot | None, plan: Plan, result: Result) -> dict[str, FileMeta]:
    """Combine *baseline*, *plan* and *result* into the final file map.

    Baseline entries carry over; successes replace them; deletes remove
    them; skips restore the baseline entry verbatim.

    Raises:
        PlanMergeError: A skipped path has no baseline entry.
    """
    final: dict[str, FileMeta] = dict(baseline.files) if baseline else {}
    for rel, meta in result.success.items():
        final[rel] = meta if meta.path == rel else replace(meta, path=rel)
    for item in plan.items:
        if item.action == TransferAction.DELETE:
            final.pop(item.path, None)
        elif item.action == TransferAction.SKIP:
            old = baseline.files.get(item.path) if baseline else None
            if old is None:
                raise PlanMergeError(f"Skipped path {item.path} is missing from the baseline")
            final[item.path] = old
    return final


def _open_log_writer(config: BackupConfig, dest_fs: FileSystem):
    """Return a writer for the run log, or ``None`` if it cannot be opened."""
    try:
        if config.log_file:
            return open(config.log_file, "wb")
        return dest_fs.create(log_path(config.snapshot_name), 0o644)
    except OSError as exc:
        logger.warning(f"Cannot open run log: {exc}")
        return None


def run(
    config: BackupConfig,
    *,
    cancel: threading.Event | None = None,
    progress: Progress | None = None,
) -> RunReport:
    """Run one backup.

    Args:
        config: Run configuration; validated here.
        cancel: When set, execution stops before the next plan item.
        progress: Progress sink for the transfer phase.

    Raises:
        ConfigError: Invalid configuration (before any I/O).
        ScanError: The source could not be listed.
        TransferIncompleteError: Some items failed or the run was cancelled.
            The snapshot was still saved (incomplete) and the pending
            marker is kept for the next run to resume.
    """
    config.validate()
    try:
        exclude = ExcludeFilter(patterns=config.exclude, exclude_from=config.exclude_from,
                                gitignore=config.gitignore)
    except OSError as exc:
        raise ConfigError(f"Cannot read exclude file: {exc}") from exc

    with ExitStack() as stack:
        src_fs = open_fs(config.source)
        stack.callback(src_fs.close)
        dest_fs = open_fs(config.dest)
        stack.callback(dest_fs.close)

        store = SnapshotStore(dest_fs)
        latest = store.load_latest()
        pending = store.load_pending()
        baseline = latest
        resumed = pending is not None
        if pending is not None:
            logger.info(f"Resuming pending snapshot {pending.name}")
            config.snapshot_name = pending.name
            baseline = pending
        else:
            existing = store.load(config.snapshot_name)
            if existing is not None and existing.completed:
                raise ConfigError(f"Snapshot {config.snapshot_name} already exists")

        try:
            current = src_fs.list(exclude)
        except OSError as exc:
            raise ScanError(f"Cannot scan {config.source.display_name}: {exc}") from exc

        plan = build_plan(current, baseline, config)
        logger.info(
            f"Planned {plan.total_files} files ({plan.total_bytes} bytes) "
            f"from {config.source.display_name} to {config.dest.display_name}"
        )

        if config.dry_run:
            for item in plan.items:
                logger.debug(f"plan {item.action} {item.path} size={item.meta.size} {item.reason}".rstrip())
            return RunReport(plan=plan, resumed=resumed)

        writer = _open_log_writer(config, dest_fs)
        if writer is not None:
            stack.enter_context(LogSink(writer, config.log_level))

        checkpoint = Checkpoint(store, baseline, config.snapshot_name,
                                config.source.display_name, config.dest.display_name)
        executor = TransferExecutor(src_fs, dest_fs, checksum=config.checksum,
                                    progress=progress or NoopProgress())

        exec_error: TransferIncompleteError | None = None
        try:
            result = executor.execute(plan, listener=_CheckpointListener(checkpoint), cancel=cancel)
        except TransferIncompleteError as exc:
            result = exc.result
            exec_error = exc
            logger.error(f"Backup finished with errors: {exc}")

        try:
            checkpoint.flush()
        except (OSError, SnapSyncError) as exc:
            logger.warning(f"Could not save progress: {exc}")

        snapshot = Snapshot(
            name=config.snapshot_name,
            created_at=datetime.now(timezone.utc),
            source_root=config.source.display_name,
            dest_root=config.dest.display_name,
            files=merge_snapshot(baseline, plan, result),
            completed=exec_error is None,
        )
        try:
            store.save(snapshot)
        except (OSError, SnapSyncError) as exc:
            logger.error(f"Saving snapshot {snapshot.name} failed: {exc}")
            raise

        if exec_error is not None:
            logger.warning(f"Backup incomplete, progress kept for resume: {snapshot.name}")
            raise exec_error

        try:
            store.clear_pending()
        except OSError as exc:
            logger.warning(f"Could not clear pending snapshot: {exc}")
        logger.info(f"Backup complete: {snapshot.name} ({len(snapshot.files)} entries)")
        return RunReport(plan=plan, result=result, snapshot=snapshot, resumed=resumed)
