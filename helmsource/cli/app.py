"""Main Typer application — imports and registers all CLI commands.

Entry point: ``helmsource`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from helmsource.cli.commands.gc import gc_cmd
from helmsource.cli.commands.reconcile import reconcile_cmd
from helmsource.cli.commands.status import status_cmd

app = typer.Typer(
    name="helmsource",
    help="helmsource: fetch Helm repository indexes into a content-addressed store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="reconcile", help="Reconcile a HelmRepository manifest.")(reconcile_cmd)
app.command(name="status", help="Show the recorded status of a HelmRepository.")(status_cmd)
app.command(name="gc", help="Garbage collect superseded artifacts.")(gc_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
