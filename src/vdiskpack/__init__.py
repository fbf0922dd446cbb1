"""
vdiskpack - Package a directory into a mountable virtual-disk container.

Builds a VHD with the host's disk tooling, mirrors the directory into it,
and converts it to a compacted VirtualBox VDI when VirtualBox is installed.
"""

__version__ = "1.0.0"
__author__ = "vdiskpack Team"

from vdiskpack.core.config import VDiskPackConfig
from vdiskpack.core.packer import Packer

__all__ = ["VDiskPackConfig", "Packer", "__version__"]
