"""
Exception hierarchy for vdiskpack.

Every failure of a pack run surfaces as a PackError subclass with a
human-readable message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vdiskpack.platform.base import CommandResult


class PackError(Exception):
    """Base exception for vdiskpack errors."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.result = result


class EmptySourceError(PackError):
    """Raised when the source holds no files after exclusions."""


class NoFreeTokenError(PackError):
    """Raised when every drive letter is already assigned."""


class PreflightError(PackError):
    """Raised when a preflight check blocks the run."""


class ProvisioningError(PackError):
    """Raised when the container cannot be created, attached or detached."""


class CopyError(PackError):
    """Raised when the mirroring tool reports a failure."""


class ConversionError(PackError):
    """Raised when the optional format conversion fails."""
