"""TransferExecutor: apply a Plan to a source/destination FileSystem pair.

Items run one at a time, in plan order.  Cancellation is checked before
each item, never in the middle of a copy.  Per-item failures are
collected and execution continues; deletes are best effort.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from ._hash import _HASH_CHUNK_SIZE, hash_stream, new_hasher
from ._types import ChecksumAlgo, FileMeta, Plan, Result, TransferAction, TransferItem
from .exceptions import (
    CancelledError,
    HashUnavailableError,
    TransferError,
    TransferIncompleteError,
    VerificationError,
)
from .fs import RemoteHashFS
from .progress import NoopProgress

if TYPE_CHECKING:
    from .fs import FileSystem
    from .progress import Progress

DEFAULT_FILE_MODE = 0o644


class TransferListener(Protocol):
    """Notified after each item that completed successfully."""

    def on_success(self, item: TransferItem, meta: FileMeta) -> None: ...


class TransferExecutor:
    """Runs plan items against *source* and *dest*.

    Args:
        source: Filesystem the data is read from.
        dest: Filesystem the data is written to.
        checksum: Verification digest; ``ChecksumAlgo.NONE`` disables it.
        progress: Receives file and byte progress events.
    """

    def __init__(
        self,
        source: FileSystem,
        dest: FileSystem,
        *,
        checksum: ChecksumAlgo = ChecksumAlgo.NONE,
        progress: Progress | None = None,
    ) -> None:
        self.source = source
        self.dest = dest
        self.checksum = ChecksumAlgo(checksum)
        self.progress = progress or NoopProgress()

    def execute(
        self,
        plan: Plan,
        *,
        listener: TransferListener | None = None,
        cancel: threading.Event | None = None,
    ) -> Result:
        """Execute *plan* and return the per-path outcome.

        Raises:
            CancelledError: *cancel* was set; ``exc.result`` holds the items
                finished so far.
            TransferIncompleteError: One or more upload, download or mkdir
                items failed; ``exc.result`` holds successes and failures.
        """
        result = Result()
        self.progress.start(plan.total_files, plan.total_bytes)
        try:
            for item in plan.items:
                if cancel is not None and cancel.is_set():
                    logger.warning(f"Cancelled before {item.path}")
                    raise CancelledError(result)
                self._run_item(item, result, listener)
        finally:
            self.progress.finish()

        if result.failed:
            raise TransferIncompleteError(f"{len(result.failed)} items failed", result)
        return result

    # ------------------------------------------------------------------
    # Per-action handlers
    # ------------------------------------------------------------------

    def _run_item(self, item: TransferItem, result: Result, listener: TransferListener | None) -> None:
        if item.action.is_transfer:
            self.progress.next_file(item.path, item.meta.size)
            try:
                meta = self.copy_file(item)
            except (OSError, TransferError, ValueError) as exc:
                logger.error(f"Transfer failed: {item.path}: {exc}")
                result.failed[item.path] = exc
                return
            logger.info(f"Transferred {item.path} ({item.meta.size} bytes)")
            self._succeed(item, meta, result, listener)

        elif item.action == TransferAction.MKDIR:
            try:
                self.dest.mkdir_all(item.path)
            except (OSError, ValueError) as exc:
                logger.error(f"mkdir failed: {item.path}: {exc}")
                result.failed[item.path] = exc
                return
            logger.debug(f"Created directory {item.path}")
            self._succeed(item, item.meta, result, listener)

        elif item.action == TransferAction.DELETE:
            try:
                self.dest.remove(item.path)
            except (OSError, ValueError) as exc:
                logger.warning(f"Delete failed: {item.path}: {exc}")
            else:
                logger.debug(f"Deleted {item.path}")

        elif item.action == TransferAction.SKIP:
            logger.debug(f"Skipped {item.path}: {item.reason}")

    def _succeed(self, item: TransferItem, meta: FileMeta, result: Result,
                 listener: TransferListener | None) -> None:
        result.success[item.path] = meta
        if listener is not None:
            listener.on_success(item, meta)

    # ------------------------------------------------------------------
    # Copy and verify
    # ------------------------------------------------------------------

    def copy_file(self, item: TransferItem) -> FileMeta:
        """Stream one file from source to dest, verifying if configured.

        Returns the source metadata, with ``checksum`` set to the hex
        digest when verification ran.
        """
        verify = self.checksum != ChecksumAlgo.NONE
        src_sum: bytes | None = None
        src_hasher = None
        if verify:
            src_sum = self._remote_hash(self.source, item.path, "source")
            if src_sum is None:
                src_hasher = new_hasher(self.checksum)

        mode = item.meta.mode or DEFAULT_FILE_MODE
        try:
            reader = self.source.open(item.path)
        except OSError as exc:
            raise TransferError(item.path, f"cannot open source: {exc}") from exc
        with reader:
            try:
                writer = self.dest.create(item.path, mode)
            except OSError as exc:
                raise TransferError(item.path, f"cannot create destination: {exc}") from exc
            with writer:
                while True:
                    chunk = reader.read(_HASH_CHUNK_SIZE)
                    if not chunk:
                        break
                    writer.write(chunk)
                    self.progress.add_bytes(len(chunk))
                    if src_hasher is not None:
                        src_hasher.update(chunk)

        if not verify:
            return item.meta
        if src_sum is None:
            src_sum = src_hasher.digest()

        dest_sum = self._remote_hash(self.dest, item.path, "destination")
        if dest_sum is None:
            with self.dest.open(item.path) as f:
                dest_sum = hash_stream(f, self.checksum)

        if src_sum != dest_sum:
            raise VerificationError(item.path)
        return replace(item.meta, checksum=src_sum.hex())

    def _remote_hash(self, fs: FileSystem, rel_path: str, side: str) -> bytes | None:
        """Ask *fs* for a digest at the data's location, or ``None`` to hash locally."""
        if not isinstance(fs, RemoteHashFS):
            return None
        try:
            return fs.compute_remote_hash(rel_path, self.checksum)
        except HashUnavailableError:
            return None
        except OSError as exc:
            logger.warning(f"Remote {side} hash failed for {rel_path}, hashing locally: {exc}")
            return None
