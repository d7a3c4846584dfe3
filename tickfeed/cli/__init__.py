"""Command-line interface for tickfeed."""

from tickfeed.cli.main import cli, main

__all__ = ["cli", "main"]
