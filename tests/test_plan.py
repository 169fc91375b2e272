"""Tests for diff planning (build_plan / should_skip)."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from snapsync._types import BackupMode, ChecksumAlgo, FileMeta, Snapshot, TransferAction
from snapsync.config import BackupConfig
from snapsync.endpoint import parse_endpoint
from snapsync.plan import SKIP_REASON, build_plan, depth, should_skip

T0 = datetime(2024, 1, 15, 14, 30, 0, tzinfo=timezone.utc)


def _config(mode=BackupMode.INCREMENTAL, checksum=ChecksumAlgo.SHA256, source="/data/src"):
    return BackupConfig(source=parse_endpoint(source), dest=parse_endpoint("/backup/dst"),
                        mode=mode, checksum=checksum)


def _file(path, size=10, mtime=T0, checksum=None):
    return FileMeta(path, size=size, mode=0o644, mtime=mtime, checksum=checksum)


def _dir(path):
    return FileMeta(path, mode=0o755, mtime=T0, is_dir=True)


def _snap(*metas):
    return Snapshot(name="base", created_at=T0, files={m.path: m for m in metas}, completed=True)


def _actions(plan):
    return [(item.action, item.path) for item in plan.items]


# ---------------------------------------------------------------------------
# depth
# ---------------------------------------------------------------------------

class TestDepth:
    def test_root(self):
        assert depth("") == 0

    def test_nested(self):
        assert depth("a") == 1
        assert depth("a/b/c") == 3


# ---------------------------------------------------------------------------
# First run (no baseline)
# ---------------------------------------------------------------------------

class TestFirstRun:
    def test_everything_is_transferred(self):
        current = [_file("b.txt", 5), _dir("dir"), _file("dir/file.txt", 7), _file("a.txt", 3)]
        plan = build_plan(current, None, _config())
        assert _actions(plan) == [
            (TransferAction.MKDIR, "dir"),
            (TransferAction.UPLOAD, "a.txt"),
            (TransferAction.UPLOAD, "b.txt"),
            (TransferAction.UPLOAD, "dir/file.txt"),
        ]
        assert plan.total_files == 3
        assert plan.total_bytes == 15

    def test_directories_before_children_shallowest_first(self):
        current = [_dir("a/b/c"), _dir("z"), _dir("a"), _dir("a/b")]
        plan = build_plan(current, None, _config())
        assert [i.path for i in plan.items] == ["a", "z", "a/b", "a/b/c"]
        assert all(i.action == TransferAction.MKDIR for i in plan.items)

    def test_mkdirs_not_counted_in_totals(self):
        plan = build_plan([_dir("d")], None, _config())
        assert plan.total_files == 0
        assert plan.total_bytes == 0

    def test_remote_source_downloads(self):
        plan = build_plan([_file("x")], None, _config(source="backup@nas:/srv/data"))
        assert plan.items[0].action == TransferAction.DOWNLOAD
        assert plan.total_files == 1

    def test_empty_source(self):
        plan = build_plan([], None, _config())
        assert plan.items == []
        assert plan.in_sync

    def test_paths_are_normalized(self):
        plan = build_plan([_file("./sub/f.txt"), _dir("sub/")], None, _config())
        assert [i.path for i in plan.items] == ["sub", "sub/f.txt"]
        assert plan.items[1].meta.path == "sub/f.txt"

    def test_full_mode_without_baseline_has_no_deletes(self):
        plan = build_plan([_file("a")], None, _config(mode=BackupMode.FULL))
        assert not plan.by_action(TransferAction.DELETE)


# ---------------------------------------------------------------------------
# Incremental skip logic
# ---------------------------------------------------------------------------

class TestIncremental:
    def test_unchanged_file_skipped(self):
        base = _snap(_file("a.txt"))
        plan = build_plan([_file("a.txt")], base, _config())
        (item,) = plan.items
        assert item.action == TransferAction.SKIP
        assert item.reason == SKIP_REASON
        assert plan.total_files == 0
        assert plan.total_bytes == 0
        assert plan.in_sync

    def test_size_change_transfers(self):
        base = _snap(_file("a.txt", size=10))
        plan = build_plan([_file("a.txt", size=11)], base, _config())
        assert _actions(plan) == [(TransferAction.UPLOAD, "a.txt")]

    def test_mtime_change_transfers(self):
        base = _snap(_file("a.txt"))
        plan = build_plan([_file("a.txt", mtime=T0 + timedelta(microseconds=1))], base, _config())
        assert _actions(plan) == [(TransferAction.UPLOAD, "a.txt")]

    def test_new_file_transfers(self):
        base = _snap(_file("a.txt"))
        plan = build_plan([_file("a.txt"), _file("b.txt")], base, _config())
        assert _actions(plan) == [(TransferAction.SKIP, "a.txt"), (TransferAction.UPLOAD, "b.txt")]

    def test_checksum_mismatch_transfers(self):
        base = _snap(_file("a", checksum="aa"))
        plan = build_plan([_file("a", checksum="bb")], base, _config())
        assert plan.items[0].action == TransferAction.UPLOAD

    def test_checksum_missing_on_one_side_still_skips(self):
        base = _snap(_file("a", checksum="aa"))
        plan = build_plan([_file("a")], base, _config())
        assert plan.items[0].action == TransferAction.SKIP

    def test_checksum_ignored_when_disabled(self):
        base = _snap(_file("a", checksum="aa"))
        plan = build_plan([_file("a", checksum="bb")], base, _config(checksum=ChecksumAlgo.NONE))
        assert plan.items[0].action == TransferAction.SKIP

    def test_existing_directory_omitted(self):
        base = _snap(_dir("d"), _file("d/f"))
        changed = replace(_dir("d"), mtime=T0 + timedelta(days=1))
        plan = build_plan([changed, _file("d/f")], base, _config())
        assert _actions(plan) == [(TransferAction.SKIP, "d/f")]

    def test_directory_replacing_file_is_created(self):
        base = _snap(_file("x"))
        plan = build_plan([_dir("x")], base, _config())
        assert _actions(plan) == [(TransferAction.MKDIR, "x")]

    def test_file_replacing_directory_is_transferred(self):
        base = _snap(_dir("x"))
        plan = build_plan([_file("x", size=0)], base, _config())
        assert _actions(plan) == [(TransferAction.UPLOAD, "x")]

    def test_no_deletes_in_incremental_mode(self):
        base = _snap(_file("gone.txt"), _dir("old"))
        plan = build_plan([], base, _config())
        assert plan.items == []


# ---------------------------------------------------------------------------
# Full mode
# ---------------------------------------------------------------------------

class TestFullMode:
    def test_files_never_skipped(self):
        base = _snap(_file("a.txt"))
        plan = build_plan([_file("a.txt")], base, _config(mode=BackupMode.FULL))
        assert _actions(plan) == [(TransferAction.UPLOAD, "a.txt")]

    def test_existing_directories_still_omitted(self):
        base = _snap(_dir("d"))
        plan = build_plan([_dir("d")], base, _config(mode=BackupMode.FULL))
        assert plan.items == []

    def test_deletes_removed_entries(self):
        base = _snap(_file("old.txt"), _file("keep.txt"))
        plan = build_plan([_file("keep.txt")], base, _config(mode=BackupMode.FULL))
        assert _actions(plan) == [
            (TransferAction.UPLOAD, "keep.txt"),
            (TransferAction.DELETE, "old.txt"),
        ]
        delete = plan.items[-1]
        assert delete.meta == base.files["old.txt"]

    def test_delete_ordering(self):
        base = _snap(
            _dir("a"), _dir("a/b"), _dir("c"),
            _file("z.txt"), _file("a/b/f"), _file("a/e"),
        )
        plan = build_plan([_file("new")], base, _config(mode=BackupMode.FULL))
        deletes = [i.path for i in plan.by_action(TransferAction.DELETE)]
        assert deletes == ["a/b/f", "a/e", "z.txt", "a/b", "c", "a"]
        assert plan.items[0].path == "new"
        assert all(i.action == TransferAction.DELETE for i in plan.items[1:])

    def test_deletes_not_counted(self):
        base = _snap(_file("gone", size=100))
        plan = build_plan([], base, _config(mode=BackupMode.FULL))
        assert plan.total_files == 0
        assert plan.total_bytes == 0
        assert not plan.in_sync


# ---------------------------------------------------------------------------
# should_skip directly
# ---------------------------------------------------------------------------

class TestShouldSkip:
    @pytest.mark.parametrize("mode", [BackupMode.FULL, BackupMode.INCREMENTAL])
    def test_no_baseline_never_skips(self, mode):
        assert should_skip("a", _file("a"), None, _config(mode=mode)) is False
        assert should_skip("d", _dir("d"), None, _config(mode=mode)) is False

    def test_directory_with_baseline_directory(self):
        base = _snap(_dir("d"))
        assert should_skip("d", _dir("d"), base, _config(mode=BackupMode.FULL)) is True

    def test_identical_file(self):
        base = _snap(_file("a"))
        assert should_skip("a", _file("a"), base, _config()) is True
