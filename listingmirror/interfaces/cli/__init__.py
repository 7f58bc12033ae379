"""CLI interface for listingmirror.

This package is the home for all Click commands.
"""

from .__main__ import cli
from .sync import check, cleanup, run, status, watch

__all__ = [
    "check",
    "cleanup",
    "cli",
    "run",
    "status",
    "watch",
]
