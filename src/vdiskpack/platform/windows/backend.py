"""
Windows Platform Backend Implementation.

Implements container operations using Windows tools:
- diskpart for creating, attaching, formatting and detaching VHDs
- robocopy for mirroring the source directory
- psutil for the drive letters currently in use
"""

from __future__ import annotations

import ctypes
import os
import subprocess
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from vdiskpack.core.logging import get_logger
from vdiskpack.platform.base import CommandResult, ContainerBackend
from vdiskpack.platform.windows.parsers import classify_robocopy_exit, parse_diskpart_errors

if TYPE_CHECKING:
    from vdiskpack.core.models import CapacityPlan

logger = get_logger(__name__)

DISKPART_FILESYSTEMS = {"ntfs": "ntfs", "exfat": "exfat", "fat32": "fat32"}


class WindowsBackend(ContainerBackend):
    """Windows implementation of container operations."""

    DISKPART = "diskpart.exe"
    ROBOCOPY = "robocopy.exe"

    @property
    def name(self) -> str:
        return "windows"

    def is_admin(self) -> bool:
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except Exception:
            return False

    def run_command(
        self,
        command: list[str],
        timeout: int | None = 300,
        check: bool = True,
    ) -> CommandResult:
        """Run a system command."""
        logger.debug("Running command", command=command)
        start_time = time.time()

        startupinfo = None
        if hasattr(subprocess, "STARTUPINFO"):
            # Hide the console window of child tools
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
            startupinfo.wShowWindow = subprocess.SW_HIDE

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
                startupinfo=startupinfo,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                command=command,
                duration_seconds=float(timeout or 0),
            )
        except OSError as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )

        cmd_result = CommandResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            command=command,
            duration_seconds=time.time() - start_time,
        )

        if check and result.returncode != 0:
            logger.warning(
                "Command failed",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr[:500] if result.stderr else "",
            )

        return cmd_result

    def _run_diskpart(
        self,
        commands: list[str],
        timeout: int = 600,
    ) -> CommandResult:
        """Run diskpart with a script."""
        script_content = "\n".join(commands)
        logger.debug("diskpart script", script=script_content)

        with tempfile.NamedTemporaryFile(
            mode="w",
            suffix=".txt",
            delete=False,
        ) as f:
            f.write(script_content)
            script_path = f.name

        try:
            cmd = [self.DISKPART, "/s", script_path]
            return self.run_command(cmd, timeout=timeout)
        finally:
            try:
                os.unlink(script_path)
            except OSError:
                pass

    def _diskpart_outcome(self, result: CommandResult, action: str) -> tuple[bool, str]:
        errors = parse_diskpart_errors(result.stdout)
        if result.success and not errors:
            return True, f"{action} succeeded"
        detail = "; ".join(errors) or result.output or f"exit code {result.returncode}"
        return False, f"{action} failed: {detail}"

    # ==================== Mount Tokens ====================

    def used_mount_tokens(self) -> set[str]:
        """Get drive letters of every mounted volume, including removable ones."""
        tokens: set[str] = set()
        for part in psutil.disk_partitions(all=True):
            mountpoint = part.mountpoint or part.device
            if len(mountpoint) >= 2 and mountpoint[1] == ":" and mountpoint[0].isalpha():
                tokens.add(mountpoint[0].upper())
        return tokens

    # ==================== Container Operations ====================

    def build_create_script(
        self,
        container_path: Path,
        plan: CapacityPlan,
        filesystem: str,
        label: str,
        vhd_type: str = "expandable",
    ) -> list[str]:
        fs = DISKPART_FILESYSTEMS.get(filesystem.lower())
        if fs is None:
            raise ValueError(f"Unsupported filesystem for diskpart: {filesystem}")

        return [
            f'create vdisk file="{container_path}" maximum={plan.container_size_mib} type={vhd_type}',
            f'select vdisk file="{container_path}"',
            "attach vdisk",
            "create partition primary",
            f'format fs={fs} label="{label}" quick',
            f"assign letter={plan.mount_token}",
        ]

    def build_detach_script(self, container_path: Path) -> list[str]:
        return [
            f'select vdisk file="{container_path}"',
            "detach vdisk",
        ]

    def create_container(
        self,
        container_path: Path,
        plan: CapacityPlan,
        filesystem: str,
        label: str,
        vhd_type: str = "expandable",
    ) -> tuple[bool, str]:
        """Create and mount a VHD using diskpart."""
        script = self.build_create_script(container_path, plan, filesystem, label, vhd_type)
        result = self._run_diskpart(script)
        success, message = self._diskpart_outcome(result, "Container creation")
        if success:
            return True, f"Created {container_path} mounted at {plan.mount_path}"
        return False, message

    def detach_container(self, container_path: Path) -> tuple[bool, str]:
        """Detach a VHD using diskpart."""
        result = self._run_diskpart(self.build_detach_script(container_path))
        success, message = self._diskpart_outcome(result, "Container detach")
        if success:
            return True, f"Detached {container_path}"
        return False, message

    # ==================== Mirroring ====================

    def build_mirror_command(
        self,
        source: Path,
        destination: str,
        exclude_files: list[str],
        exclude_dirs: list[str],
        threads: int,
        retries: int = 1,
        wait_seconds: int = 1,
    ) -> list[str]:
        cmd = [
            self.ROBOCOPY,
            str(source),
            destination,
            "/MIR",
            # links are copied as links and junctions skipped, matching what the scan counts
            "/SL",
            "/XJ",
            f"/MT:{threads}",
            f"/R:{retries}",
            f"/W:{wait_seconds}",
            "/NP",
            "/NFL",
            "/NDL",
        ]
        if exclude_files:
            cmd.extend(["/XF", *exclude_files])
        if exclude_dirs:
            cmd.extend(["/XD", *exclude_dirs])
        return cmd

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
        """Mirror source into destination with robocopy."""
        cmd = self.build_mirror_command(
            source,
            destination,
            exclude_files,
            exclude_dirs,
            threads,
            retries,
            wait_seconds,
        )
        # robocopy uses non-zero exit codes for success
        result = self.run_command(cmd, timeout=None, check=False)
        success, description = classify_robocopy_exit(result.returncode)
        if success:
            return True, f"Mirror completed: {description}"

        tail = "\n".join(result.output.splitlines()[-10:])
        return False, f"Mirror failed ({description}, exit {result.returncode}): {tail}"
