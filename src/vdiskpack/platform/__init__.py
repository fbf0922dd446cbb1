"""
vdiskpack Platform Layer.

Provides the host backend that provisions containers and mirrors files.
Only Windows ships the tooling the pipeline drives.
"""

from __future__ import annotations

import platform

from vdiskpack.platform.base import CommandResult, ContainerBackend


def get_platform_backend() -> ContainerBackend:
    """Get the container backend for the current OS."""
    system = platform.system().lower()

    if system == "windows":
        from vdiskpack.platform.windows import WindowsBackend

        return WindowsBackend()
    raise RuntimeError(f"Unsupported platform: {system} (vdiskpack requires Windows)")


def is_admin() -> bool:
    """Check if running with administrative privileges."""
    system = platform.system().lower()

    if system == "windows":
        import ctypes

        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except Exception:
            return False

    import os

    return os.geteuid() == 0


__all__ = [
    "CommandResult",
    "ContainerBackend",
    "get_platform_backend",
    "is_admin",
]
