"""Exclude-filter support for source listings.

Combines ``--exclude`` patterns, ``--exclude-from`` files, and automatic
``.gitignore`` loading into a single predicate used by the filesystem
listings.

``--exclude`` patterns are shell globs checked against both the full
relative path and its base name; a ``*`` never matches across ``/`` in the
full-path check.  A trailing ``/`` restricts a pattern to directories.
``.gitignore`` files follow gitignore rules (implemented by
``dulwich.ignore.IgnoreFilter``).
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path
from typing import Sequence

from dulwich.ignore import IgnoreFilter


def _match_segments(pattern: str, rel_path: str) -> bool:
    """Match *rel_path* against *pattern* one ``/``-separated segment at a time."""
    pat_parts = pattern.split("/")
    path_parts = rel_path.split("/")
    if len(pat_parts) != len(path_parts):
        return False
    return all(fnmatchcase(name, pat) for pat, name in zip(pat_parts, path_parts))


def glob_excluded(rel_path: str, patterns: Sequence[str], *, is_dir: bool = False) -> bool:
    """Return True if *rel_path* matches any glob in *patterns*."""
    base = rel_path.rsplit("/", 1)[-1]
    for raw in patterns:
        p = raw.strip()
        if not p:
            continue
        if p.endswith("/"):
            if not is_dir:
                continue
            p = p.rstrip("/")
            if not p:
                continue
        if _match_segments(p, rel_path) or fnmatchcase(base, p):
            return True
    return False


class ExcludeFilter:
    """Combines --exclude patterns, --exclude-from, and .gitignore files."""

    def __init__(
        self,
        *,
        patterns: Sequence[str] | None = None,
        exclude_from: str | None = None,
        gitignore: bool = False,
    ) -> None:
        base: list[str] = [p for p in (patterns or ()) if p.strip()]
        if exclude_from is not None:
            for line in Path(exclude_from).read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    base.append(line)
        self._patterns = base
        self._gitignore = gitignore
        # {rel_dir: IgnoreFilter | None}, loaded lazily per directory
        self._dir_filters: dict[str, IgnoreFilter | None] = {}

    @property
    def active(self) -> bool:
        """True if any filtering is configured."""
        return bool(self._patterns) or self._gitignore

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    # ------------------------------------------------------------------
    def is_excluded(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """Check against glob patterns only (for post-filtering)."""
        return glob_excluded(rel_path, self._patterns, is_dir=is_dir)

    # ------------------------------------------------------------------
    def enter_directory(self, abs_dir: Path, rel_dir: str) -> None:
        """Load .gitignore from *abs_dir* if gitignore mode is on."""
        if not self._gitignore:
            return
        if rel_dir in self._dir_filters:
            return
        gi = abs_dir / ".gitignore"
        if gi.is_file():
            self._dir_filters[rel_dir] = IgnoreFilter.from_path(str(gi))
        else:
            self._dir_filters[rel_dir] = None

    # ------------------------------------------------------------------
    def is_excluded_in_walk(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """Check glob patterns + loaded .gitignore hierarchy.

        Called during ``os.walk()`` after ``enter_directory`` has been
        invoked for every ancestor.
        """
        if self.is_excluded(rel_path, is_dir=is_dir):
            return True

        if not self._gitignore:
            return False

        if not is_dir and rel_path.rsplit("/", 1)[-1] == ".gitignore":
            return True

        # Each .gitignore checks the path relative to its own directory,
        # root first; an explicit negation stops the search.
        parts = rel_path.split("/")
        for depth in range(len(parts)):
            dir_key = "/".join(parts[:depth])
            filt = self._dir_filters.get(dir_key)
            if filt is None:
                continue
            sub = "/".join(parts[depth:])
            result = filt.is_ignored(sub + "/" if is_dir else sub)
            if result is True:
                return True
            if result is False:
                return False

        return False
