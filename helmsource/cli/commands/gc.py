"""``helmsource gc MANIFEST`` — garbage collect a repository's artifacts."""

from __future__ import annotations

from pathlib import Path

import typer

from helmsource.cli.common import console, open_manifest, setup_logging, storage_from_config
from helmsource.config import config
from helmsource.core.artifact_store import StorageError


def gc_cmd(
    manifest: Path = typer.Argument(..., help="Path to the HelmRepository manifest."),
) -> None:
    """Remove superseded artifacts, keeping the one recorded in status."""
    setup_logging(config)
    obj = open_manifest(manifest).load()
    artifact = obj.get_artifact()
    if artifact is None:
        console.print(f"[yellow]No artifact recorded for {obj.key}; nothing to collect.[/yellow]")
        return

    storage = storage_from_config(config)
    try:
        deleted = storage.garbage_collect(artifact, config.gc_timeout_seconds)
    except StorageError as exc:
        console.print(f"[bold red]Garbage collection failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    if not deleted:
        console.print("[dim]No garbage found.[/dim]")
        return
    console.print(f"[green]Removed {len(deleted)} artifact(s):[/green]")
    for path in deleted:
        console.print(f"  [cyan]{path}[/cyan]")
