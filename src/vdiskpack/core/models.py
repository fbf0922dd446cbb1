"""
vdiskpack data models.

Defines the values that flow through a pack run: scan results, capacity
plans, options and results.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

MIB = 1024 * 1024


def bytes_to_mib(size_bytes: int) -> int:
    """Convert bytes to whole MiB, rounding up."""
    return -(-size_bytes // MIB)


class ContainerFormat(Enum):
    """On-disk format of a produced container."""

    VHD = "vhd"
    VDI = "vdi"

    @property
    def suffix(self) -> str:
        return f".{self.value}"


class FormatPreference(Enum):
    """Requested output format."""

    AUTO = "auto"
    VHD = "vhd"
    VDI = "vdi"

    @classmethod
    def from_string(cls, value: str) -> FormatPreference:
        """Create FormatPreference from string value."""
        value_lower = value.lower().strip()
        for pref in cls:
            if pref.value == value_lower:
                return pref
        raise ValueError(f"Unknown container format: {value}")


@dataclass
class ScanResult:
    """Total size of the files under a source root."""

    root: Path
    total_bytes: int = 0
    file_count: int = 0
    excluded_count: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.total_bytes == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "total_bytes": self.total_bytes,
            "file_count": self.file_count,
            "excluded_count": self.excluded_count,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class CapacityPlan:
    """Container size and drive letter chosen for a run."""

    content_size_bytes: int
    container_size_bytes: int
    mount_token: str

    @property
    def container_size_mib(self) -> int:
        # Round up so the provisioner never gets less than planned
        return bytes_to_mib(self.container_size_bytes)

    @property
    def mount_path(self) -> str:
        return f"{self.mount_token}:\\"

    def to_dict(self) -> dict[str, Any]:
        return {
            "content_size_bytes": self.content_size_bytes,
            "container_size_bytes": self.container_size_bytes,
            "container_size_mib": self.container_size_mib,
            "mount_token": self.mount_token,
        }


@dataclass
class PackOptions:
    """Options for a single pack run."""

    source: Path
    output: Path | None = None  # None = next to the source, named after it
    format: FormatPreference = FormatPreference.AUTO
    label: str | None = None
    threads: int | None = None
    exclude_files: list[str] = field(default_factory=list)
    exclude_dirs: list[str] = field(default_factory=list)
    keep_intermediate: bool | None = None
    overwrite: bool = False
    dry_run: bool = False


@dataclass
class PackResult:
    """Outcome of a pack run."""

    success: bool
    source: Path
    container_path: Path | None = None
    format: ContainerFormat | None = None
    scan: ScanResult | None = None
    plan: CapacityPlan | None = None
    dry_run: bool = False
    steps: list[str] = field(default_factory=list)
    step_durations: dict[str, float] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "source": str(self.source),
            "container_path": str(self.container_path) if self.container_path else None,
            "format": self.format.value if self.format else None,
            "scan": self.scan.to_dict() if self.scan else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "dry_run": self.dry_run,
            "steps": self.steps,
            "step_durations": self.step_durations,
            "warnings": self.warnings,
            "error": self.error,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class PackReport:
    """Run report for audit and review."""

    result: PackResult
    converter: str | None = None
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "converter": self.converter,
            "config_snapshot": self.config_snapshot,
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)
