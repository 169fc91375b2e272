"""Diff planning: turn a source listing and a baseline snapshot into a Plan.

Ordering is part of the contract:

* ``mkdir`` items come first, shallowest directory first, so a parent is
  always created before its children.
* File items follow in lexicographic path order.
* In full mode, ``delete`` items come last: files ascending, then
  directories deepest first (descending path within a depth), so a
  directory is never removed before its contents.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Iterable

from ._types import (
    BackupMode,
    ChecksumAlgo,
    FileMeta,
    Plan,
    Snapshot,
    TransferAction,
    TransferItem,
    normalize_rel,
)

if TYPE_CHECKING:
    from .config import BackupConfig

SKIP_REASON = "unchanged file"


def depth(rel: str) -> int:
    """Number of path components in *rel* (0 for the root)."""
    if not rel:
        return 0
    return rel.count("/") + 1


def should_skip(rel: str, meta: FileMeta, baseline: Snapshot | None, config: BackupConfig) -> bool:
    """Decide whether *meta* can be left alone given *baseline*.

    Directories skip when the baseline already has a directory at *rel*,
    regardless of size or mtime.  Files never skip in full mode or without
    a baseline; otherwise size and mtime must match exactly, and checksums
    must agree when checksum comparison is on and both sides have one.
    """
    if meta.is_dir:
        if baseline is None:
            return False
        old = baseline.files.get(rel)
        return old is not None and old.is_dir

    if config.mode == BackupMode.FULL or baseline is None:
        return False
    old = baseline.files.get(rel)
    if old is None or old.is_dir:
        return False
    if old.size != meta.size:
        return False
    if old.mtime != meta.mtime:
        return False
    if (config.checksum != ChecksumAlgo.NONE and old.checksum and meta.checksum
            and old.checksum != meta.checksum):
        return False
    return True


def build_plan(current: Iterable[FileMeta], baseline: Snapshot | None, config: BackupConfig) -> Plan:
    """Build the ordered :class:`~snapsync._types.Plan` for one run.

    Args:
        current: Flat listing of the source tree (files and directories).
        baseline: Latest completed snapshot, or the pending one when
            resuming.  ``None`` for a first run.
        config: Supplies the mode, checksum setting and source endpoint.
    """
    by_path: dict[str, FileMeta] = {}
    dirs: list[FileMeta] = []
    files: list[FileMeta] = []
    for meta in current:
        rel = normalize_rel(meta.path)
        if rel != meta.path:
            meta = replace(meta, path=rel)
        by_path[rel] = meta
        (dirs if meta.is_dir else files).append(meta)

    dirs.sort(key=lambda m: (depth(m.path), m.path))
    files.sort(key=lambda m: m.path)

    plan = Plan()
    for d in dirs:
        if should_skip(d.path, d, baseline, config):
            continue
        plan.add(TransferItem(d.path, d, TransferAction.MKDIR))

    action = TransferAction.DOWNLOAD if config.source.is_remote else TransferAction.UPLOAD
    for f in files:
        if should_skip(f.path, f, baseline, config):
            plan.add(TransferItem(f.path, f, TransferAction.SKIP, reason=SKIP_REASON))
        else:
            plan.add(TransferItem(f.path, f, action))

    if baseline is not None and config.mode == BackupMode.FULL:
        gone = [(rel, old) for rel, old in baseline.files.items() if rel not in by_path]
        gone_files = sorted((g for g in gone if not g[1].is_dir), key=lambda g: g[0])
        gone_dirs = sorted((g for g in gone if g[1].is_dir),
                           key=lambda g: (depth(g[0]), g[0]), reverse=True)
        for rel, old in gone_files + gone_dirs:
            plan.add(TransferItem(rel, old, TransferAction.DELETE))

    return plan
