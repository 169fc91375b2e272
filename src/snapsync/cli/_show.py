"""The show command."""

from __future__ import annotations

import json

import click

from ..exceptions import SnapSyncError
from ..fs import open_fs
from ..store import SnapshotStore
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
)


@main.command()
@_dest_option
@_ssh_options
@click.option("--name", default=None, help="Show this snapshot instead of the latest.")
@click.option("--pending", is_flag=True, default=False,
              help="Show the in-progress snapshot left by an interrupted run.")
@click.option("--json", "as_json", is_flag=True, default=False,
              help="Print the snapshot record as JSON.")
@click.option("--files", "list_files", is_flag=True, default=False,
              help="List every recorded entry.")
@_log_level_option
@click.pass_context
def show(ctx, dest, port, identity, ssh_option, name, pending, as_json, list_files, log_level):
    """Show the latest (or a named or pending) snapshot of DEST."""
    if name and pending:
        raise click.ClickException("--name and --pending are mutually exclusive")
    _setup_logging(ctx, log_level)
    endpoint = _parse_endpoint(dest, "dest", port, _build_ssh(port, identity, ssh_option))

    fs = open_fs(endpoint)
    try:
        store = SnapshotStore(fs)
        if pending:
            snap = store.load_pending()
            missing = "No pending snapshot"
        elif name:
            snap = store.load(name)
            missing = f"Snapshot not found: {name}"
        else:
            snap = store.load_latest()
            missing = "No completed snapshot yet"
    except SnapSyncError as exc:
        _fail(exc)
    finally:
        fs.close()

    if snap is None:
        raise click.ClickException(missing)

    if as_json:
        click.echo(json.dumps(snap.to_dict(), indent=2, ensure_ascii=False))
        return

    files = [m for m in snap.files.values() if not m.is_dir]
    status = "completed" if snap.completed else "incomplete"
    click.echo(f"snapshot  {snap.name} ({status})")
    click.echo(f"created   {snap.created_at.isoformat()}")
    click.echo(f"source    {snap.source_root}")
    click.echo(f"dest      {snap.dest_root}")
    click.echo(f"entries   {len(files)} files, {len(snap.files) - len(files)} directories, "
               f"{_format_size(sum(m.size for m in files))}")
    if list_files:
        for rel in sorted(snap.files):
            meta = snap.files[rel]
            if meta.is_dir:
                click.echo(f"{rel}/")
            else:
                click.echo(f"{rel}\t{meta.size}\t{meta.mtime.isoformat()}")
