"""
vdiskpack Platform Backend Base.

Defines the interface the pack pipeline needs from the host OS.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vdiskpack.core.models import CapacityPlan


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined output for error reporting."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part).strip()

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


class ContainerBackend(ABC):
    """Abstract base class for host-specific container operations."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Platform name (e.g., 'windows')."""

    @abstractmethod
    def is_admin(self) -> bool:
        """Check if running with admin privileges."""

    @abstractmethod
    def run_command(
        self,
        command: list[str],
        timeout: int | None = 300,
        check: bool = True,
    ) -> CommandResult:
        """Run a system command."""

    @abstractmethod
    def used_mount_tokens(self) -> set[str]:
        """Drive letters currently assigned on the host."""

    @abstractmethod
    def create_container(
        self,
        container_path: Path,
        plan: CapacityPlan,
        filesystem: str,
        label: str,
        vhd_type: str = "expandable",
    ) -> tuple[bool, str]:
        """
        Create, attach, partition, format and mount a container.
        Returns (success, message/error).
        """

    @abstractmethod
    def detach_container(self, container_path: Path) -> tuple[bool, str]:
        """
        Detach a mounted container.
        Returns (success, message/error).
        """

    @abstractmethod
    def mirror_directory(
        self,
        source: Path,
        destination: str,
        exclude_files: list[str],
        exclude_dirs: list[str],
        threads: int,
        retries: int = 1,
        wait_seconds: int = 1,
    ) -> tuple[bool, str]:
        """
        Mirror source into destination.
        Returns (success, message/error).
        """
