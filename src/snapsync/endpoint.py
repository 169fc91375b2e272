"""Source/destination endpoints: local paths or ``[user@]host:/path``."""

from __future__ import annotations

import os
import posixpath
import re
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import ConfigError


class EndpointType(str, Enum):
    """Where an endpoint lives."""
    LOCAL = "local"
    REMOTE = "remote"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True)
class SSHOptions:
    """ssh client settings passed through from the command line.

    Attributes:
        port: ssh port (0 for the client default).
        identity: Private key path passed as ``-i``.
        extra: Extra ``-o`` options, e.g. ``StrictHostKeyChecking=no``.
    """
    port: int = 0
    identity: str | None = None
    extra: tuple[str, ...] = ()


@dataclass(frozen=True)
class Endpoint:
    """One side of a backup."""
    type: EndpointType
    path: str
    host: str = ""
    user: str = ""
    ssh: SSHOptions = field(default_factory=SSHOptions)

    @property
    def is_remote(self) -> bool:
        return self.type == EndpointType.REMOTE

    @property
    def target(self) -> str:
        """``user@host`` (or just ``host``) for ssh."""
        return f"{self.user}@{self.host}" if self.user else self.host

    @property
    def display_name(self) -> str:
        if self.is_remote:
            return f"{self.target}:{self.path}"
        return self.path

    def join(self, *parts: str) -> str:
        if self.is_remote:
            return posixpath.join(self.path, *parts)
        return os.path.join(self.path, *parts)


_REMOTE_RE = re.compile(r"^(?:(?P<user>[A-Za-z0-9_.\-]+)@)?(?P<host>[^:/\\]+):(?P<path>.+)$")
_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")


def parse_endpoint(raw: str, port: int = 22, ssh: SSHOptions | None = None) -> Endpoint:
    """Classify *raw* as a local path or a remote ``[user@]host:path``.

    A single drive letter followed by a separator (``C:\\data``) is always
    local, as is any string whose first ``:`` comes after a path separator.

    Raises:
        ConfigError: If *raw* is empty or a remote endpoint has an empty path.
    """
    raw = raw.strip()
    if not raw:
        raise ConfigError("Endpoint path must not be empty")

    m = _REMOTE_RE.match(raw)
    if m and not _DRIVE_RE.match(raw):
        remote_path = m.group("path")
        if not remote_path.strip():
            raise ConfigError(f"Invalid remote endpoint: {raw}")
        opts = ssh or SSHOptions()
        if not opts.port:
            opts = SSHOptions(port=port, identity=opts.identity, extra=opts.extra)
        return Endpoint(
            type=EndpointType.REMOTE,
            path=remote_path,
            host=m.group("host"),
            user=m.group("user") or "",
            ssh=opts,
        )

    return Endpoint(type=EndpointType.LOCAL, path=os.path.normpath(raw))
