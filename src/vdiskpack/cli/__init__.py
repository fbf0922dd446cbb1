"""
vdiskpack CLI Module.

Provides command-line interface for vdiskpack operations.
"""

from vdiskpack.cli.main import main, cli

__all__ = ["main", "cli"]
