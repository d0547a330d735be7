"""helmsource CLI — Typer-based command-line interface.

Provides the ``helmsource`` command with subcommands for reconciling a
repository manifest, showing its recorded status and running garbage
collection for its artifacts.

All output uses Rich for formatted terminal display.
"""
