"""Command-line interface for turnscan."""

from turnscan.cli.main import cli

__all__ = ["cli"]
