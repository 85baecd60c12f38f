"""Command-line surface for doggie-store."""

from doggie_store.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
