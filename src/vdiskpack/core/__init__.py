"""
vdiskpack Core - Planning, configuration and orchestration.

Contains the capacity planner, the pack pipeline, configuration,
logging and preflight checks.
"""

from vdiskpack.core.config import VDiskPackConfig
from vdiskpack.core.errors import (
    ConversionError,
    CopyError,
    EmptySourceError,
    NoFreeTokenError,
    PackError,
    PreflightError,
    ProvisioningError,
)
from vdiskpack.core.logging import get_logger, setup_logging
from vdiskpack.core.packer import Packer
from vdiskpack.core.planner import (
    compute_container_size,
    plan_capacity,
    select_mount_token,
)

__all__ = [
    "VDiskPackConfig",
    "ConversionError",
    "CopyError",
    "EmptySourceError",
    "NoFreeTokenError",
    "PackError",
    "PreflightError",
    "ProvisioningError",
    "get_logger",
    "setup_logging",
    "Packer",
    "compute_container_size",
    "plan_capacity",
    "select_mount_token",
]
