"""Tests for the snapsync CLI (backup and show)."""

import json

import pytest

from snapsync._local import LocalFS
from snapsync.cli import main
from snapsync.store import SnapshotStore


@pytest.fixture
def src(tmp_path, tree):
    return tree(tmp_path / "src", {"dir/": None, "dir/file.txt": "hello", "top.txt": "top"})


def _backup(runner, src, dst, *extra, env=None):
    args = ["backup", "-s", str(src), "-d", str(dst), "--no-progress", *extra]
    return runner.invoke(main, args, env=env)


class TestBackup:
    def test_basic(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        result = _backup(runner, src, dst, "--snapshot-name", "first")
        assert result.exit_code == 0, result.output
        assert (dst / "dir" / "file.txt").read_text() == "hello"
        latest = SnapshotStore(LocalFS(dst)).load_latest()
        assert latest.name == "first"
        assert set(latest.files) == {"dir", "dir/file.txt", "top.txt"}

    def test_env_vars(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        result = runner.invoke(main, ["backup", "--no-progress", "--snapshot-name", "env"],
                               env={"SNAPSYNC_SOURCE": str(src), "SNAPSYNC_DEST": str(dst)})
        assert result.exit_code == 0, result.output
        assert (dst / "top.txt").exists()

    def test_missing_source(self, runner, tmp_path):
        result = runner.invoke(main, ["backup", "-d", str(tmp_path / "dst")], env={"SNAPSYNC_SOURCE": ""})
        assert result.exit_code != 0
        assert "No source specified" in result.output

    def test_remote_to_remote(self, runner):
        result = runner.invoke(main, ["backup", "-s", "a:/x", "-d", "b:/y"])
        assert result.exit_code == 1
        assert "Remote-to-remote" in result.output

    def test_invalid_mode(self, runner, src, tmp_path):
        result = _backup(runner, src, tmp_path / "dst", "--mode", "sometimes")
        assert result.exit_code == 2

    def test_dry_run_prints_plan(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        result = _backup(runner, src, dst, "--dry-run")
        assert result.exit_code == 0, result.output
        assert "+ dir/" in result.output
        assert "+ dir/file.txt (5 B)" in result.output
        assert "+ top.txt (3 B)" in result.output
        assert "2 files" in result.output
        assert not dst.exists()

    def test_dry_run_verbose_shows_skips(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        assert _backup(runner, src, dst, "--snapshot-name", "one").exit_code == 0
        result = runner.invoke(main, ["-v", "backup", "-s", str(src), "-d", str(dst), "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "= dir/file.txt (unchanged file)" in result.output

    def test_full_mode_deletes(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        assert _backup(runner, src, dst, "-m", "full", "--snapshot-name", "one").exit_code == 0
        (src / "top.txt").unlink()
        result = _backup(runner, src, dst, "-m", "full", "--snapshot-name", "two")
        assert result.exit_code == 0, result.output
        assert not (dst / "top.txt").exists()

    def test_exclude(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        result = _backup(runner, src, dst, "--exclude", "top.*", "--snapshot-name", "s")
        assert result.exit_code == 0, result.output
        assert not (dst / "top.txt").exists()
        assert (dst / "dir" / "file.txt").exists()

    def test_exclude_from_must_exist(self, runner, src, tmp_path):
        result = _backup(runner, src, tmp_path / "dst", "--exclude-from", str(tmp_path / "missing"))
        assert result.exit_code == 2

    def test_failure_reports_items(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        dst.mkdir()
        (dst / "dir").write_text("blocks the directory")
        result = _backup(runner, src, dst, "--snapshot-name", "broken")
        assert result.exit_code == 1
        assert "ERROR: dir:" in result.output
        assert "resume snapshot broken" in result.output

    def test_verbose_summary(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        result = runner.invoke(main, ["-v", "backup", "-s", str(src), "-d", str(dst),
                                      "--no-progress", "--snapshot-name", "s"])
        assert result.exit_code == 0, result.output
        assert "Snapshot s: 3 items written" in result.output


class TestShow:
    def test_latest(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        assert _backup(runner, src, dst, "--snapshot-name", "first").exit_code == 0
        result = runner.invoke(main, ["show", "-d", str(dst)])
        assert result.exit_code == 0, result.output
        assert "first (completed)" in result.output
        assert "2 files, 1 directories" in result.output

    def test_json(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        assert _backup(runner, src, dst, "--snapshot-name", "first").exit_code == 0
        result = runner.invoke(main, ["show", "-d", str(dst), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["name"] == "first"
        assert data["completed"] is True
        assert data["files"]["dir/file.txt"]["size"] == 5

    def test_files(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        assert _backup(runner, src, dst, "--snapshot-name", "first").exit_code == 0
        result = runner.invoke(main, ["show", "-d", str(dst), "--files"])
        assert "dir/\n" in result.output
        assert "dir/file.txt\t5\t" in result.output

    def test_named(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        assert _backup(runner, src, dst, "--snapshot-name", "one").exit_code == 0
        assert _backup(runner, src, dst, "--snapshot-name", "two").exit_code == 0
        result = runner.invoke(main, ["show", "-d", str(dst), "--name", "one"])
        assert result.exit_code == 0, result.output
        assert "one (completed)" in result.output

    def test_named_missing(self, runner, tmp_path):
        result = runner.invoke(main, ["show", "-d", str(tmp_path), "--name", "nope"])
        assert result.exit_code == 1
        assert "Snapshot not found: nope" in result.output

    def test_pending(self, runner, src, tmp_path):
        dst = tmp_path / "dst"
        dst.mkdir()
        (dst / "dir").write_text("blocks the directory")
        assert _backup(runner, src, dst, "--snapshot-name", "broken").exit_code == 1
        result = runner.invoke(main, ["show", "-d", str(dst), "--pending"])
        assert result.exit_code == 0, result.output
        assert "broken (incomplete)" in result.output

    def test_nothing_yet(self, runner, tmp_path):
        result = runner.invoke(main, ["show", "-d", str(tmp_path)])
        assert result.exit_code == 1
        assert "No completed snapshot yet" in result.output

    def test_name_and_pending_exclusive(self, runner, tmp_path):
        result = runner.invoke(main, ["show", "-d", str(tmp_path), "--name", "x", "--pending"])
        assert result.exit_code == 1
