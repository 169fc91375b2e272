"""Shared fixtures for snapsync tests."""

import hashlib
import io
import os
from datetime import datetime, timezone

import pytest
from click.testing import CliRunner
from loguru import logger

from snapsync._types import FileMeta
from snapsync.config import BackupConfig
from snapsync.endpoint import parse_endpoint
from snapsync.exceptions import HashUnavailableError

T0 = datetime(2024, 1, 15, 14, 30, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _quiet_loguru():
    """Start and end every test with no loguru handlers attached."""
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def runner():
    return CliRunner()


# ---------------------------------------------------------------------------
# Trees on disk
# ---------------------------------------------------------------------------

def write_tree(root, entries, mtime=T0):
    """Create files and directories under *root*.

    *entries* maps relative paths to contents; a path ending in ``/`` is a
    directory.  All entries get the same *mtime* so listings are stable.
    """
    root.mkdir(parents=True, exist_ok=True)
    stamp = mtime.timestamp()
    for rel, content in entries.items():
        p = root / rel.rstrip("/")
        if rel.endswith("/"):
            p.mkdir(parents=True, exist_ok=True)
            continue
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode()
        p.write_bytes(content)
        os.utime(p, (stamp, stamp))
    return root


@pytest.fixture
def make_config():
    """Factory for a validated config between two local directories."""
    def _make(src, dst, **kw):
        cfg = BackupConfig(source=parse_endpoint(str(src)), dest=parse_endpoint(str(dst)), **kw)
        cfg.validate()
        return cfg
    return _make


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class _MemWriter(io.BytesIO):
    def __init__(self, fs, rel):
        super().__init__()
        self._fs = fs
        self._rel = rel

    def close(self):
        if not self.closed:
            self._fs.files[self._rel] = self.getvalue()
        super().close()


class MemoryFS:
    """In-memory FileSystem with per-path failure injection."""

    def __init__(self, root="/mem"):
        self._root = root
        self.files = {}
        self.dirs = set()
        self.modes = {}
        self.fail_open = set()
        self.fail_create = set()
        self.fail_mkdir = set()
        self.fail_remove = set()
        self.removed = []
        self.closed = False

    @property
    def root(self):
        return self._root

    def _add_parents(self, rel):
        parts = rel.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            self.dirs.add("/".join(parts[:i]))

    def list(self, exclude=None):
        metas = [FileMeta(d, is_dir=True, mtime=T0) for d in sorted(self.dirs)]
        metas += [FileMeta(rel, size=len(data), mode=0o644, mtime=T0)
                  for rel, data in sorted(self.files.items())]
        if exclude is not None:
            metas = [m for m in metas if not exclude.is_excluded(m.path, is_dir=m.is_dir)]
        return metas

    def open(self, rel_path):
        if rel_path in self.fail_open:
            raise PermissionError(f"open refused: {rel_path}")
        if rel_path not in self.files:
            raise FileNotFoundError(rel_path)
        return io.BytesIO(self.files[rel_path])

    def create(self, rel_path, mode=0o644):
        if rel_path in self.fail_create:
            raise PermissionError(f"create refused: {rel_path}")
        self._add_parents(rel_path)
        self.modes[rel_path] = mode
        return _MemWriter(self, rel_path)

    def mkdir_all(self, rel_path):
        if rel_path in self.fail_mkdir:
            raise PermissionError(f"mkdir refused: {rel_path}")
        if rel_path:
            self._add_parents(rel_path + "/x")

    def remove(self, rel_path):
        if rel_path in self.fail_remove:
            raise PermissionError(f"remove refused: {rel_path}")
        prefix = rel_path + "/"
        self.files = {k: v for k, v in self.files.items() if k != rel_path and not k.startswith(prefix)}
        self.dirs = {d for d in self.dirs if d != rel_path and not d.startswith(prefix)}
        self.removed.append(rel_path)

    def stat(self, rel_path):
        if rel_path in self.dirs:
            return FileMeta(rel_path, is_dir=True, mtime=T0)
        if rel_path not in self.files:
            raise FileNotFoundError(rel_path)
        return FileMeta(rel_path, size=len(self.files[rel_path]), mtime=T0)

    def close(self):
        self.closed = True


class HashingMemoryFS(MemoryFS):
    """MemoryFS that also computes digests "remotely".

    Args:
        corrupt: Report a digest of slightly different data.
        unavailable: Raise HashUnavailableError for every request.
    """

    def __init__(self, root="/mem", *, corrupt=False, unavailable=False):
        super().__init__(root)
        self.corrupt = corrupt
        self.unavailable = unavailable
        self.hash_calls = []

    def compute_remote_hash(self, rel_path, algo):
        self.hash_calls.append(rel_path)
        if self.unavailable:
            raise HashUnavailableError(f"no {algo} here")
        data = self.files[rel_path]
        if self.corrupt:
            data += b"!"
        return hashlib.new(str(algo), data).digest()


@pytest.fixture
def tree():
    """The :func:`write_tree` helper."""
    return write_tree


@pytest.fixture
def memfs():
    """Factory for :class:`MemoryFS` instances."""
    return MemoryFS


@pytest.fixture
def hashfs():
    """Factory for :class:`HashingMemoryFS` instances."""
    return HashingMemoryFS
