"""Helpers shared by the CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from helmsource.config import ControllerConfig
from helmsource.core.artifact_store import ArtifactStorage
from helmsource.core.client import ManifestFileClient
from helmsource.index.secrets import StaticSecretResolver
from helmsource.models.conditions import ConditionStatus
from helmsource.models.repository import HelmRepository, format_duration

console = Console()

_STATUS_STYLE = {
    ConditionStatus.TRUE: "green",
    ConditionStatus.FALSE: "red",
    ConditionStatus.UNKNOWN: "yellow",
}


def setup_logging(config: ControllerConfig) -> None:
    level = "DEBUG" if config.debug else config.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def open_manifest(manifest: Path) -> ManifestFileClient:
    if not manifest.exists():
        console.print(f"[bold red]Manifest not found:[/bold red] {manifest}")
        raise typer.Exit(code=1)
    try:
        return ManifestFileClient(manifest)
    except (yaml.YAMLError, ValueError) as exc:
        console.print(f"[bold red]Invalid manifest:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc


def load_secrets(path: Path | None) -> StaticSecretResolver:
    """Read a YAML mapping of ``namespace/name`` to secret data."""
    if path is None:
        return StaticSecretResolver()
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        console.print(f"[bold red]Secrets file must be a mapping:[/bold red] {path}")
        raise typer.Exit(code=1)
    return StaticSecretResolver(data)


def storage_from_config(config: ControllerConfig) -> ArtifactStorage:
    return ArtifactStorage(
        config.storage_path,
        config.storage_adv_addr,
        retention_ttl=config.artifact_retention_ttl,
        retention_records=config.artifact_retention_records,
        lock_timeout=config.lock_timeout_seconds,
    )


def render_status(obj: HelmRepository) -> None:
    """Print the object's conditions and artifact as Rich tables."""
    summary = Table(title=f"HelmRepository {obj.key}", show_header=False)
    summary.add_column("Field", style="cyan")
    summary.add_column("Value")
    summary.add_row("URL", obj.spec.url)
    summary.add_row("Type", obj.spec.type or "default")
    summary.add_row("Interval", format_duration(obj.spec.interval))
    summary.add_row("Suspended", "yes" if obj.spec.suspend else "no")
    summary.add_row(
        "Generation",
        f"{obj.metadata.generation} (observed {obj.status.observed_generation})",
    )
    summary.add_row("Published URL", obj.status.url or "[dim]-[/dim]")
    artifact = obj.get_artifact()
    if artifact is not None:
        summary.add_row("Revision", artifact.revision)
        summary.add_row("Digest", artifact.digest)
        summary.add_row("Artifact URL", artifact.url)
    else:
        summary.add_row("Artifact", "[dim]none[/dim]")
    console.print(summary)

    if not obj.status.conditions:
        console.print("[dim]No conditions recorded.[/dim]")
        return

    table = Table(title="Conditions")
    table.add_column("Type", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Reason")
    table.add_column("Message")
    for condition in obj.status.conditions:
        style = _STATUS_STYLE.get(condition.status, "white")
        table.add_row(
            condition.type,
            f"[{style}]{condition.status.value}[/{style}]",
            condition.reason,
            condition.message,
        )
    console.print(table)
