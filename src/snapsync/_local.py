"""Local-disk implementation of the FileSystem capability."""

from __future__ import annotations

import os
import shutil
import stat as stat_mod
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from loguru import logger

from ._types import FileMeta, mtime_from_ns, normalize_rel
from .store import META_DIR

if TYPE_CHECKING:
    from ._exclude import ExcludeFilter


def _meta_from_stat(rel: str, st: os.stat_result) -> FileMeta:
    is_dir = stat_mod.S_ISDIR(st.st_mode)
    return FileMeta(
        path=rel,
        size=0 if is_dir else st.st_size,
        mode=stat_mod.S_IMODE(st.st_mode),
        mtime=mtime_from_ns(st.st_mtime_ns),
        is_dir=is_dir,
    )


class LocalFS:
    """A directory tree on local disk."""

    def __init__(self, root: str | os.PathLike[str]):
        self._root = Path(root).absolute()

    def __repr__(self) -> str:
        return f"LocalFS({str(self._root)!r})"

    @property
    def root(self) -> str:
        return str(self._root)

    def _full(self, rel_path: str) -> Path:
        """Resolve *rel_path* under the root, refusing ``..`` escapes."""
        rel = normalize_rel(rel_path)
        if any(part == ".." for part in rel.split("/")):
            raise ValueError(f"Path escapes root: {rel_path}")
        return self._root / rel if rel else self._root

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(self, exclude: ExcludeFilter | None = None) -> list[FileMeta]:
        """Walk the tree, returning files and directories.

        Excluded directories and the root's ``.snapsync`` directory are
        pruned.  Symlinked directories are not descended into; dangling
        symlinks and special files are skipped with a warning.  Other
        errors while walking propagate.
        """
        metas: list[FileMeta] = []

        def _raise(exc: OSError) -> None:
            raise exc

        for dirpath, dirnames, filenames in os.walk(self._root, onerror=_raise):
            dp = Path(dirpath)
            rel_dir = normalize_rel(str(dp.relative_to(self._root)).replace(os.sep, "/"))
            if rel_dir == ".":
                rel_dir = ""
            if exclude is not None:
                exclude.enter_directory(dp, rel_dir)

            kept = []
            for dname in sorted(dirnames):
                rel = f"{rel_dir}/{dname}" if rel_dir else dname
                full = dp / dname
                if rel == META_DIR:
                    continue
                if exclude is not None and exclude.is_excluded_in_walk(rel, is_dir=True):
                    continue
                if full.is_symlink():
                    logger.warning(f"Skipping symlinked directory: {rel}")
                    continue
                metas.append(_meta_from_stat(rel, full.stat()))
                kept.append(dname)
            dirnames[:] = kept

            for fname in sorted(filenames):
                rel = f"{rel_dir}/{fname}" if rel_dir else fname
                if rel_dir == "" and fname == META_DIR:
                    continue
                if exclude is not None and exclude.is_excluded_in_walk(rel):
                    continue
                meta = self._file_meta(dp / fname, rel)
                if meta is not None:
                    metas.append(meta)
        return metas

    @staticmethod
    def _file_meta(full: Path, rel: str) -> FileMeta | None:
        st = os.lstat(full)
        if stat_mod.S_ISLNK(st.st_mode):
            try:
                st = os.stat(full)
            except OSError as exc:
                logger.warning(f"Skipping unreadable symlink: {rel} ({exc.strerror})")
                return None
        if not stat_mod.S_ISREG(st.st_mode):
            logger.warning(f"Skipping special file: {rel}")
            return None
        return _meta_from_stat(rel, st)

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def open(self, rel_path: str) -> BinaryIO:
        return open(self._full(rel_path), "rb")

    def create(self, rel_path: str, mode: int = 0o644) -> BinaryIO:
        full = self._full(rel_path)
        full.parent.mkdir(parents=True, exist_ok=True)
        if full.is_file() and not os.access(full, os.W_OK):
            full.unlink()
        f = open(full, "wb")
        try:
            os.chmod(full, mode & 0o7777)
        except OSError:
            f.close()
            raise
        return f

    def mkdir_all(self, rel_path: str) -> None:
        self._full(rel_path).mkdir(parents=True, exist_ok=True)

    def remove(self, rel_path: str) -> None:
        full = self._full(rel_path)
        if full == self._root:
            raise ValueError("Refusing to remove the endpoint root")
        if full.is_dir() and not full.is_symlink():
            shutil.rmtree(full)
        else:
            try:
                full.unlink()
            except FileNotFoundError:
                pass

    def stat(self, rel_path: str) -> FileMeta:
        return _meta_from_stat(normalize_rel(rel_path), os.stat(self._full(rel_path)))

    def close(self) -> None:
        pass
