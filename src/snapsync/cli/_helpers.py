"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import click

from .._logging import configure_logging
from ..endpoint import Endpoint, SSHOptions, parse_endpoint
from ..exceptions import SnapSyncError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _setup_logging(ctx, log_level: str) -> None:
    """Send log records to stderr; -v forces debug."""
    level = "debug" if ctx.obj.get("verbose") else log_level
    try:
        configure_logging(level)
    except ValueError as exc:
        raise click.ClickException(f"Invalid log level: {log_level} ({exc})")


def _fail(exc: SnapSyncError):
    """Re-raise a library error as a click error (exit code 1)."""
    raise click.ClickException(str(exc)) from exc


def _build_ssh(port: int, identity: str | None, ssh_option: tuple[str, ...]) -> SSHOptions:
    return SSHOptions(port=port, identity=identity or None, extra=tuple(ssh_option))


def _parse_endpoint(raw: str | None, what: str, port: int, ssh: SSHOptions) -> Endpoint:
    """Parse a --source / --dest value, raising a clear error if missing."""
    if not raw:
        raise click.ClickException(
            f"No {what} specified. Use --{what} or set SNAPSYNC_{what.upper()}."
        )
    try:
        return parse_endpoint(raw, port, ssh)
    except SnapSyncError as exc:
        _fail(exc)


def _format_size(n: int) -> str:
    """Human readable byte count (``1.5 MiB``)."""
    size = float(n)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if size < 1024 or unit == "TiB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{n} B"


# ---------------------------------------------------------------------------
# Shared option decorators
# ---------------------------------------------------------------------------

def _dest_option(f):
    """Shared --dest/-d option."""
    return click.option(
        "--dest", "-d", envvar="SNAPSYNC_DEST",
        help="Destination: local path or [user@]host:/path (or set SNAPSYNC_DEST).",
    )(f)


def _ssh_options(f):
    """Shared ssh connection options."""
    f = click.option("--ssh-option", "-o", "ssh_option", multiple=True,
                     help="Extra ssh -o option, e.g. StrictHostKeyChecking=no (repeatable).")(f)
    f = click.option("--identity", "-i", type=click.Path(), default=None,
                     help="ssh private key file.")(f)
    f = click.option("--port", "-p", type=int, default=22, show_default=True,
                     help="ssh port.")(f)
    return f


def _log_level_option(f):
    return click.option(
        "--log-level", "log_level", default="info", show_default=True,
        type=click.Choice(["debug", "info", "warn", "warning", "error"], case_sensitive=False),
        help="Log verbosity.",
    )(f)


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, verbose):
    """snapsync: incremental, resumable backups over ssh.

    Copies a directory tree between a local path and a remote
    [user@]host:/path, keeping a versioned snapshot record inside the
    destination (under .snapsync/).

    \b
    Quick start:
      snapsync backup -s ./photos -d backup@nas:/srv/photos
      snapsync backup -s ./photos -d /mnt/usb/photos --mode full
      snapsync show -d /mnt/usb/photos

    \b
    An interrupted run (Ctrl-C, failures) leaves a pending snapshot;
    the next run to the same destination resumes it.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
