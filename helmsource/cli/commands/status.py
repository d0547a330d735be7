"""``helmsource status MANIFEST`` — show the recorded status of a repository."""

from __future__ import annotations

from pathlib import Path

import typer

from helmsource.cli.common import open_manifest, render_status


def status_cmd(
    manifest: Path = typer.Argument(..., help="Path to the HelmRepository manifest."),
) -> None:
    """Print the conditions and artifact recorded in the manifest."""
    client = open_manifest(manifest)
    render_status(client.load())
