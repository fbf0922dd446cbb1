"""
vdiskpack Windows Platform Backend.

Implements container operations using Windows tools:
- diskpart for VHD creation, attach and detach
- robocopy for mirroring
"""

from vdiskpack.platform.windows.backend import WindowsBackend
from vdiskpack.platform.windows.parsers import (
    classify_robocopy_exit,
    parse_diskpart_errors,
)

__all__ = [
    "WindowsBackend",
    "classify_robocopy_exit",
    "parse_diskpart_errors",
]
