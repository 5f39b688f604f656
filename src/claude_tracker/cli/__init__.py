"""Command line interface."""

from claude_tracker.cli.main import app


__all__ = ["app"]
