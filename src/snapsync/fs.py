"""Filesystem capabilities consumed by the backup engine.

:class:`FileSystem` is implemented by :class:`~snapsync._local.LocalFS`
and :class:`~snapsync._remote.RemoteFS`.  :class:`RemoteHashFS` is a
separate, optional capability probed with ``isinstance``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._exclude import ExcludeFilter
    from ._types import ChecksumAlgo, FileMeta
    from .endpoint import Endpoint

__all__ = ["FileSystem", "RemoteHashFS", "open_fs"]


@runtime_checkable
class FileSystem(Protocol):
    """Uniform access to one endpoint's tree.

    All paths are relative to :attr:`root` and use forward slashes.
    "Path does not exist" is always reported as :class:`FileNotFoundError`.
    """

    @property
    def root(self) -> str: ...

    def list(self, exclude: ExcludeFilter | None = None) -> list[FileMeta]:
        """Return every file and directory under the root, minus exclusions."""
        ...

    def open(self, rel_path: str) -> BinaryIO: ...

    def create(self, rel_path: str, mode: int = 0o644) -> BinaryIO:
        """Open *rel_path* for writing, creating parent directories."""
        ...

    def mkdir_all(self, rel_path: str) -> None: ...

    def remove(self, rel_path: str) -> None:
        """Remove *rel_path* recursively; a missing path is not an error."""
        ...

    def stat(self, rel_path: str) -> FileMeta: ...

    def close(self) -> None: ...


@runtime_checkable
class RemoteHashFS(Protocol):
    """Computes a digest where the data lives instead of streaming it back."""

    def compute_remote_hash(self, rel_path: str, algo: ChecksumAlgo) -> bytes:
        """Return the raw digest of *rel_path*.

        Raises:
            HashUnavailableError: The algorithm or tool is not available.
        """
        ...


def open_fs(endpoint: Endpoint) -> FileSystem:
    """Build the filesystem implementation for *endpoint*."""
    from ._local import LocalFS
    from ._remote import RemoteFS

    if endpoint.is_remote:
        return RemoteFS(endpoint)
    return LocalFS(endpoint.path)
