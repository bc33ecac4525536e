"""CLI runtime helpers."""

from gmailstats.cli.runtime import configure_runtime

__all__ = ["configure_runtime"]
