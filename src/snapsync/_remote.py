"""Remote implementation of the FileSystem capability over ssh.

Every operation runs a POSIX shell command on the remote host through
the local ``ssh`` client.  File contents stream through the ssh
process's stdin/stdout; on POSIX clients a ControlMaster socket is shared
by all commands of one :class:`RemoteFS`.
"""

from __future__ import annotations

import errno
import hashlib
import os
import posixpath
import subprocess
import tempfile
import time
from typing import TYPE_CHECKING

from loguru import logger

from ._types import ChecksumAlgo, FileMeta, mtime_from_ns, normalize_rel
from .exceptions import HashUnavailableError
from .store import META_DIR

if TYPE_CHECKING:
    from ._exclude import ExcludeFilter
    from .endpoint import Endpoint

_CONTROL_PERSIST = 600

_HASH_COMMANDS = {
    ChecksumAlgo.MD5: ("md5sum", "md5 -r"),
    ChecksumAlgo.SHA1: ("sha1sum", "shasum -a 1"),
    ChecksumAlgo.SHA256: ("sha256sum", "shasum -a 256"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def shell_quote(value: str) -> str:
    """Single-quote *value* for a POSIX shell."""
    return "'" + value.replace("'", "'\\''") + "'"


def _ssh_error(rel_path: str, stderr: bytes | str, returncode: int) -> OSError:
    """Map a failed remote command to ``FileNotFoundError`` or ``OSError``."""
    text = stderr.decode("utf-8", "replace") if isinstance(stderr, bytes) else stderr
    text = text.strip()
    if "No such file" in text:
        return FileNotFoundError(errno.ENOENT, text or "No such file or directory", rel_path)
    return OSError(f"remote command failed for {rel_path} (exit {returncode}): {text}")


def parse_epoch_ns(value: str) -> int:
    """Parse ``1700000000`` or ``1700000000.123456789`` into nanoseconds."""
    value = value.strip()
    if not value:
        return 0
    sec, _, frac = value.partition(".")
    try:
        ns = int(sec) * 1_000_000_000
        if frac:
            ns += int((frac + "000000000")[:9])
    except ValueError:
        return 0
    return ns


def parse_mode(value: str) -> int:
    """Parse octal permission bits, returning 0 on garbage."""
    try:
        return int(value.strip(), 8) & 0o7777
    except ValueError:
        return 0


def parse_list_line(line: str) -> FileMeta | None:
    """Parse one ``path|size|mtime|mode|type`` line, or return ``None``."""
    if not line.strip():
        return None
    parts = line.rsplit("|", 4)
    if len(parts) != 5:
        return None
    rel = normalize_rel(parts[0])
    if not rel or rel == ".":
        return None
    try:
        size = int(parts[1])
    except ValueError:
        return None
    is_dir = parts[4].strip() == "d"
    return FileMeta(
        path=rel,
        size=0 if is_dir else size,
        mode=parse_mode(parts[3]),
        mtime=mtime_from_ns(parse_epoch_ns(parts[2])),
        is_dir=is_dir,
    )


def _find_printf_unsupported(output: str) -> bool:
    text = output.lower()
    return "-printf" in text or "unknown predicate" in text or "busybox" in text


def _supports_control_master() -> bool:
    # Windows OpenSSH has no ControlMaster support
    return os.name != "nt"


# ---------------------------------------------------------------------------
# Process-backed streams
# ---------------------------------------------------------------------------

class _ProcessReader:
    """Readable stream over the stdout of an ssh process."""

    def __init__(self, proc: subprocess.Popen, rel_path: str):
        self._proc = proc
        self._rel_path = rel_path
        self._closed = False

    def read(self, size: int = -1) -> bytes:
        return self._proc.stdout.read(size)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._proc.stdout.close()
        stderr = self._proc.stderr.read()
        self._proc.stderr.close()
        rc = self._proc.wait()
        if rc != 0:
            raise _ssh_error(self._rel_path, stderr, rc)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class _ProcessWriter:
    """Writable stream over the stdin of an ssh process."""

    def __init__(self, proc: subprocess.Popen, rel_path: str):
        self._proc = proc
        self._rel_path = rel_path
        self._closed = False

    def write(self, data: bytes) -> int:
        self._proc.stdin.write(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._proc.stdin.close()
        stderr = self._proc.stderr.read()
        self._proc.stderr.close()
        rc = self._proc.wait()
        if rc != 0:
            raise _ssh_error(self._rel_path, stderr, rc)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# ---------------------------------------------------------------------------
# RemoteFS
# ---------------------------------------------------------------------------

class RemoteFS:
    """A directory tree on a host reachable over ssh.

    Also implements :class:`~snapsync.fs.RemoteHashFS` using the remote
    ``*sum`` tools.
    """

    def __init__(self, endpoint: Endpoint):
        self._endpoint = endpoint
        self._control_path: str | None = None
        if _supports_control_master():
            seed = f"{endpoint.target}:{endpoint.path}-{time.time_ns()}-{os.getpid()}"
            digest = hashlib.sha1(seed.encode()).hexdigest()[:12]
            self._control_path = os.path.join(tempfile.gettempdir(), f"snapsync-ssh-{digest}.sock")

    def __repr__(self) -> str:
        return f"RemoteFS({self._endpoint.display_name!r})"

    @property
    def root(self) -> str:
        return self._endpoint.path

    def _remote_path(self, rel_path: str) -> str:
        rel = normalize_rel(rel_path)
        return posixpath.join(self._endpoint.path, rel) if rel else self._endpoint.path

    # ------------------------------------------------------------------
    # ssh plumbing
    # ------------------------------------------------------------------

    def _base_args(self, *, control: bool = True) -> list[str]:
        opts = self._endpoint.ssh
        args: list[str] = []
        if opts.identity:
            args += ["-i", opts.identity]
        if opts.port:
            args += ["-p", str(opts.port)]
        for extra in opts.extra:
            if extra.strip():
                args += ["-o", extra]
        if control and self._control_path:
            args += [
                "-o", "ControlMaster=auto",
                "-o", f"ControlPath={self._control_path}",
                "-o", f"ControlPersist={_CONTROL_PERSIST}",
            ]
        return args

    def ssh_args(self, script: str) -> list[str]:
        """Return the full ``ssh`` argv that runs *script* remotely."""
        return ["ssh", *self._base_args(), self._endpoint.target, script]

    def _run(self, script: str) -> subprocess.CompletedProcess:
        logger.trace(f"ssh {self._endpoint.target}: {script}")
        return subprocess.run(self.ssh_args(script), capture_output=True)

    def _run_checked(self, script: str, rel_path: str) -> bytes:
        proc = self._run(script)
        if proc.returncode != 0:
            raise _ssh_error(rel_path, proc.stderr, proc.returncode)
        return proc.stdout

    def _popen(self, script: str, **kwargs) -> subprocess.Popen:
        logger.trace(f"ssh {self._endpoint.target}: {script}")
        return subprocess.Popen(self.ssh_args(script), stderr=subprocess.PIPE, **kwargs)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(self, exclude: ExcludeFilter | None = None) -> list[FileMeta]:
        """List the remote tree with ``find -printf``, or a stat loop on BusyBox."""
        root = shell_quote(self._endpoint.path)
        script = f"cd {root} && find . -mindepth 1 -printf '%P|%s|%T@|%m|%y\\n'"
        proc = self._run(script)
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", "replace")
            if not _find_printf_unsupported(stderr):
                raise _ssh_error(".", stderr, proc.returncode)
            logger.debug("Remote find lacks -printf, falling back to stat")
            proc = self._run(self._stat_list_script(root))
            if proc.returncode != 0:
                raise _ssh_error(".", proc.stderr, proc.returncode)
        return self._parse_listing(proc.stdout.decode("utf-8", "surrogateescape"), exclude)

    @staticmethod
    def _stat_list_script(root: str) -> str:
        return (
            f"cd {root} && find . -mindepth 1 | while IFS= read -r file; do\n"
            'rel="${file#./}"\n'
            '[ -z "$rel" ] && continue\n'
            "out=$(stat -c '%s|%Y|%a' \"$file\" 2>/dev/null || stat -f '%z|%m|%Lp' \"$file\" 2>/dev/null)\n"
            '[ -z "$out" ] && continue\n'
            'if [ -d "$file" ]; then t=d; else t=f; fi\n'
            "printf '%s|%s|%s\\n' \"$rel\" \"$out\" \"$t\"\n"
            "done"
        )

    @staticmethod
    def _parse_listing(output: str, exclude: ExcludeFilter | None) -> list[FileMeta]:
        metas: list[FileMeta] = []
        excluded_dirs: list[str] = []
        for line in output.splitlines():
            meta = parse_list_line(line)
            if meta is None:
                continue
            if meta.path == META_DIR or meta.path.startswith(META_DIR + "/"):
                continue
            if any(meta.path.startswith(d + "/") for d in excluded_dirs):
                continue
            if exclude is not None and exclude.is_excluded(meta.path, is_dir=meta.is_dir):
                if meta.is_dir:
                    excluded_dirs.append(meta.path)
                continue
            metas.append(meta)
        # Children of excluded directories may be listed before their parent
        return [m for m in metas
                if not any(m.path.startswith(d + "/") for d in excluded_dirs)]

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def open(self, rel_path: str) -> _ProcessReader:
        remote = shell_quote(self._remote_path(rel_path))
        proc = self._popen(f"cat {remote}", stdout=subprocess.PIPE)
        return _ProcessReader(proc, rel_path)

    def create(self, rel_path: str, mode: int = 0o644) -> _ProcessWriter:
        remote = self._remote_path(rel_path)
        quoted = shell_quote(remote)
        script = (f"mkdir -p {shell_quote(posixpath.dirname(remote))} && "
                  f"cat > {quoted} && chmod {mode & 0o7777:04o} {quoted}")
        proc = self._popen(script, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL)
        return _ProcessWriter(proc, rel_path)

    def mkdir_all(self, rel_path: str) -> None:
        self._run_checked(f"mkdir -p {shell_quote(self._remote_path(rel_path))}", rel_path)

    def remove(self, rel_path: str) -> None:
        if not normalize_rel(rel_path):
            raise ValueError("Refusing to remove the endpoint root")
        self._run_checked(f"rm -rf {shell_quote(self._remote_path(rel_path))}", rel_path)

    def stat(self, rel_path: str) -> FileMeta:
        remote = shell_quote(self._remote_path(rel_path))
        script = (f"stat -c '%s|%Y|%a|%F' {remote} 2>/dev/null || "
                  f"stat -f '%z|%m|%Lp|%HT' {remote}")
        line = self._run_checked(script, rel_path).decode("utf-8", "replace").strip()
        parts = line.split("|")
        if len(parts) < 4:
            raise OSError(f"Unexpected stat output for {rel_path}: {line}")
        is_dir = "directory" in parts[3].lower()
        return FileMeta(
            path=normalize_rel(rel_path),
            size=0 if is_dir else int(parts[0] or 0),
            mode=parse_mode(parts[2]),
            mtime=mtime_from_ns(parse_epoch_ns(parts[1])),
            is_dir=is_dir,
        )

    # ------------------------------------------------------------------
    # RemoteHashFS
    # ------------------------------------------------------------------

    def compute_remote_hash(self, rel_path: str, algo: ChecksumAlgo) -> bytes:
        tools = _HASH_COMMANDS.get(ChecksumAlgo(algo))
        if tools is None:
            raise HashUnavailableError(f"No remote hash command for {algo}")
        remote = shell_quote(self._remote_path(rel_path))
        branches = []
        for tool in tools:
            exe = tool.split()[0]
            branches.append(f"command -v {exe} >/dev/null 2>&1; then {tool} {remote}")
        script = "if " + "; elif ".join(branches) + "; else exit 127; fi"
        proc = self._run(script)
        if proc.returncode == 127:
            raise HashUnavailableError(f"No {algo} tool on {self._endpoint.target}")
        if proc.returncode != 0:
            raise _ssh_error(rel_path, proc.stderr, proc.returncode)
        token = proc.stdout.decode("ascii", "replace").split(maxsplit=1)
        try:
            return bytes.fromhex(token[0])
        except (IndexError, ValueError):
            raise OSError(f"Unexpected {algo} output for {rel_path}: {proc.stdout!r}")

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Shut down the ControlMaster connection, if one was started."""
        if not self._control_path or not os.path.exists(self._control_path):
            return
        args = ["ssh", *self._base_args(control=False), "-S", self._control_path,
                "-O", "exit", self._endpoint.target]
        proc = subprocess.run(args, capture_output=True)
        if proc.returncode != 0:
            logger.debug(f"ssh control exit: {proc.stderr.decode('utf-8', 'replace').strip()}")
        try:
            os.remove(self._control_path)
        except FileNotFoundError:
            pass
