"""The backup command."""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager

import click
from loguru import logger

from .._types import BackupMode, ChecksumAlgo, TransferAction
from ..config import BackupConfig
from ..core import run
from ..exceptions import CancelledError, SnapSyncError, TransferIncompleteError
from ..progress import BarProgress, NoopProgress
from ._helpers import (
    main,
    _build_ssh,
    _dest_option,
    _fail,
    _format_size,
    _log_level_option,
    _parse_endpoint,
    _setup_logging,
    _ssh_options,
    _status,
)

_PLAN_PREFIX = {
    TransferAction.MKDIR: "+",
    TransferAction.UPLOAD: "+",
    TransferAction.DOWNLOAD: "+",
    TransferAction.DELETE: "-",
    TransferAction.SKIP: "=",
}


@contextmanager
def _cancel_on_sigint(cancel: threading.Event):
    """Turn the first Ctrl-C into a cancellation request; a second one aborts."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        logger.warning("Interrupted: stopping after the current file (Ctrl-C again to abort)")

    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _print_plan(plan, verbose: bool) -> None:
    for item in plan.items:
        if item.action == TransferAction.SKIP and not verbose:
            continue
        prefix = _PLAN_PREFIX[item.action]
        if item.meta.is_dir:
            click.echo(f"{prefix} {item.path}/")
        elif item.action == TransferAction.SKIP:
            click.echo(f"{prefix} {item.path} ({item.reason})")
        else:
            click.echo(f"{prefix} {item.path} ({_format_size(item.meta.size)})")
    click.echo(
        f"{plan.total_files} files, {_format_size(plan.total_bytes)} to transfer",
        err=True,
    )


@main.command()
@click.option("--source", "-s", envvar="SNAPSYNC_SOURCE",
              help="Source: local path or [user@]host:/path (or set SNAPSYNC_SOURCE).")
@_dest_option
@_ssh_options
@click.option("--mode", "-m", type=click.Choice([m.value for m in BackupMode]),
              default=BackupMode.INCREMENTAL.value, show_default=True,
              help="full deletes destination entries missing from the source.")
@click.option("--checksum", type=click.Choice([a.value for a in ChecksumAlgo]),
              default=ChecksumAlgo.SHA256.value, show_default=True,
              help="Digest used to verify each copied file.")
@click.option("--exclude", multiple=True,
              help="Exclude paths matching a glob pattern (repeatable).")
@click.option("--exclude-from", "exclude_from", type=click.Path(exists=True, dir_okay=False),
              help="Read exclude patterns from file.")
@click.option("--gitignore", "use_gitignore", is_flag=True, default=False,
              help="Honour .gitignore files in the source tree (local source only).")
@click.option("--dry-run", "-n", "dry_run", is_flag=True, default=False,
              help="Show what would be transferred without doing it.")
@click.option("--snapshot-name", "snapshot_name", default="",
              help="Snapshot name (default: UTC timestamp, e.g. 20240115T143000Z).")
@click.option("--log-file", "log_file", type=click.Path(dir_okay=False), default=None,
              help="Write the run log here instead of into the destination.")
@_log_level_option
@click.option("--no-progress", "no_progress", is_flag=True, default=False,
              help="Disable the progress bar.")
@click.pass_context
def backup(ctx, source, dest, port, identity, ssh_option, mode, checksum, exclude,
           exclude_from, use_gitignore, dry_run, snapshot_name, log_file, log_level, no_progress):
    """Back up SOURCE to DEST.

    Exactly one side may be remote ([user@]host:/path). Unchanged files
    (same size and modification time as the last snapshot) are skipped.

    \b
    Examples:
        snapsync backup -s ./docs -d me@nas:/backup/docs
        snapsync backup -s me@nas:/srv/www -d ./www-backup --mode full
        snapsync backup -s ./docs -d /mnt/usb/docs --dry-run
    """
    _setup_logging(ctx, log_level)
    ssh = _build_ssh(port, identity, ssh_option)
    config = BackupConfig(
        source=_parse_endpoint(source, "source", port, ssh),
        dest=_parse_endpoint(dest, "dest", port, ssh),
        mode=BackupMode(mode),
        checksum=ChecksumAlgo(checksum),
        exclude=list(exclude),
        exclude_from=exclude_from,
        gitignore=use_gitignore,
        dry_run=dry_run,
        snapshot_name=snapshot_name,
        log_file=log_file,
        log_level=log_level,
        no_progress=no_progress,
    )

    progress = NoopProgress() if (no_progress or dry_run) else BarProgress()
    cancel = threading.Event()
    try:
        with _cancel_on_sigint(cancel):
            report = run(config, cancel=cancel, progress=progress)
    except CancelledError as exc:
        raise click.ClickException(
            f"Backup cancelled after {len(exc.result.success)} items; "
            f"run again to resume snapshot {config.snapshot_name}"
        )
    except TransferIncompleteError as exc:
        for path, err in sorted(exc.result.failed.items()):
            click.echo(f"ERROR: {path}: {err}", err=True)
        raise click.ClickException(
            f"{exc}; run again to resume snapshot {config.snapshot_name}"
        )
    except SnapSyncError as exc:
        _fail(exc)

    if report.dry_run:
        _print_plan(report.plan, ctx.obj.get("verbose"))
        return

    if report.resumed:
        _status(ctx, f"Resumed snapshot {report.snapshot.name}")
    _status(
        ctx,
        f"Snapshot {report.snapshot.name}: {len(report.result.success)} items written, "
        f"{len(report.plan.by_action(TransferAction.SKIP))} unchanged, "
        f"{len(report.plan.by_action(TransferAction.DELETE))} deleted",
    )
