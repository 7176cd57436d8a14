"""Command-line interface for fixladder."""

from fixladder.cli.app import app

__all__ = ["app"]
