"""
Optional VHD to VDI conversion through VirtualBox's VBoxManage.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

from vdiskpack.core.errors import ConversionError
from vdiskpack.core.logging import get_logger
from vdiskpack.platform.base import CommandResult

logger = get_logger(__name__)

VBOXMANAGE = "VBoxManage"

CommandRunner = Callable[..., CommandResult]


def detect_converter(probe_paths: Iterable[Path], use_path_lookup: bool = True) -> Path | None:
    """
    Locate VBoxManage.

    Probes the fixed install paths first, then PATH. Returns None when
    VirtualBox is not installed.
    """
    for candidate in probe_paths:
        candidate = Path(candidate)
        if candidate.is_file():
            logger.debug("Converter found", path=str(candidate))
            return candidate

    if use_path_lookup:
        found = shutil.which(VBOXMANAGE)
        if found:
            logger.debug("Converter found on PATH", path=found)
            return Path(found)

    logger.debug("Converter not found")
    return None


class VirtualBoxConverter:
    """Converts a detached VHD into a (compacted) VDI."""

    CONVERT_TIMEOUT = None  # large images can take hours

    def __init__(self, executable: Path, run_command: CommandRunner) -> None:
        self.executable = executable
        self._run = run_command

    def build_clone_command(self, source: Path, target: Path) -> list[str]:
        return [
            str(self.executable),
            "clonemedium",
            "disk",
            str(source),
            str(target),
            "--format",
            "VDI",
        ]

    def build_compact_command(self, target: Path) -> list[str]:
        return [str(self.executable), "modifymedium", "disk", str(target), "--compact"]

    def convert(self, source: Path, target: Path, compact: bool = True) -> Path:
        """
        Convert source into target.

        Raises ConversionError on failure. A partially written target is
        left in place for inspection.
        """
        if not source.exists():
            raise ConversionError(f"Container to convert does not exist: {source}")

        logger.info("Converting container", source=str(source), target=str(target))
        result = self._run(self.build_clone_command(source, target), timeout=self.CONVERT_TIMEOUT)
        if not result.success:
            raise ConversionError(
                f"VBoxManage clonemedium failed (exit {result.returncode}): "
                f"{result.output or 'no output'}",
                result=result,
            )

        if compact:
            result = self._run(self.build_compact_command(target), timeout=self.CONVERT_TIMEOUT)
            if not result.success:
                raise ConversionError(
                    f"VBoxManage compact failed (exit {result.returncode}): "
                    f"{result.output or 'no output'}",
                    result=result,
                )

        return target
