"""``helmsource reconcile MANIFEST`` — reconcile a repository manifest.

Runs reconcile passes until no immediate requeue is requested (bounded by
``--max-passes``), writing the resulting status back into the manifest.
"""

from __future__ import annotations

from pathlib import Path

import typer

from helmsource.cli.common import console, load_secrets, open_manifest, render_status, setup_logging
from helmsource.config import config
from helmsource.controller import HelmRepositoryReconciler
from helmsource.core.client import NotFoundError
from helmsource.core.events import LoggingEventRecorder
from helmsource.index.client import HttpIndexClient


def reconcile_cmd(
    manifest: Path = typer.Argument(..., help="Path to the HelmRepository manifest."),
    secrets: Path = typer.Option(
        None,
        "--secrets",
        "-s",
        help="YAML mapping of 'namespace/name' to secret data.",
    ),
    max_passes: int = typer.Option(
        5,
        "--max-passes",
        "-n",
        help="Upper bound on consecutive passes while a requeue is requested.",
    ),
) -> None:
    """Fetch the repository index and store it as an artifact."""
    setup_logging(config)
    client = open_manifest(manifest)
    reconciler = HelmRepositoryReconciler.from_config(
        config, client, HttpIndexClient(), load_secrets(secrets), LoggingEventRecorder()
    )

    outcome = None
    for _ in range(max_passes):
        outcome = reconciler.reconcile(client.namespace, client.name)
        if not outcome.result.requeue or outcome.error is not None:
            break

    try:
        render_status(client.load())
    except NotFoundError:
        console.print("[dim]Object was removed.[/dim]")

    if outcome is not None and outcome.error is not None:
        console.print(f"[bold red]Reconciliation failed:[/bold red] {outcome.error}")
        raise typer.Exit(code=1)
    if outcome is not None and outcome.result.requeue_after is not None:
        console.print(
            f"[dim]Next reconciliation in {outcome.result.requeue_after.total_seconds():.0f}s[/dim]"
        )
