"""
vdiskpack configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".vdiskpack" / "config.json"

VBOXMANAGE_PROBE_PATHS = [
    r"C:\Program Files\Oracle\VirtualBox\VBoxManage.exe",
    r"C:\Program Files (x86)\Oracle\VirtualBox\VBoxManage.exe",
]


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".vdiskpack" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class PlannerConfig(BaseModel):
    """Sizing margins applied to the scanned content size."""

    buffer_percent: int = Field(default=20, ge=0, le=400)
    reserve_mib: int = Field(default=500, ge=1, le=1024 * 1024)

    @property
    def reserve_bytes(self) -> int:
        return self.reserve_mib * 1024 * 1024


class ContainerConfig(BaseModel):
    """Configuration for the provisioned container volume."""

    filesystem: Literal["ntfs", "exfat", "fat32"] = "ntfs"
    label: str = Field(default="VDISKPACK", min_length=1, max_length=32)
    vhd_type: Literal["expandable", "fixed"] = "expandable"


class MirrorConfig(BaseModel):
    """Configuration passed through to the mirroring tool."""

    threads: int = Field(default=16, ge=1, le=128)
    retries: int = Field(default=1, ge=0, le=100)
    wait_seconds: int = Field(default=1, ge=0, le=300)
    exclude_files: list[str] = Field(default_factory=lambda: ["*.vhd", "*.vhdx", "*.vdi"])
    exclude_dirs: list[str] = Field(
        default_factory=lambda: ["$RECYCLE.BIN", "System Volume Information"]
    )


class ConverterConfig(BaseModel):
    """Configuration for the optional VirtualBox conversion step."""

    enabled: bool = True
    probe_paths: list[Path] = Field(
        default_factory=lambda: [Path(p) for p in VBOXMANAGE_PROBE_PATHS]
    )
    compact: bool = True
    keep_intermediate: bool = False


class SafetyConfig(BaseModel):
    """Configuration for safety features."""

    require_admin: bool = True
    require_confirmation: bool = True
    free_space_check: bool = True


class VDiskPackConfig(BaseModel):
    """Main vdiskpack configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    container: ContainerConfig = Field(default_factory=ContainerConfig)
    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    converter: ConverterConfig = Field(default_factory=ConverterConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    report_directory: Path = Field(default_factory=lambda: Path.home() / ".vdiskpack" / "reports")

    @field_validator("report_directory", mode="before")
    @classmethod
    def expand_report_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> VDiskPackConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.report_directory.mkdir(parents=True, exist_ok=True)

    def get_report_file(self) -> Path:
        """Get path for a new run report file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.report_directory / f"pack_{timestamp}.json"


def get_default_config() -> VDiskPackConfig:
    """Get the default configuration."""
    return VDiskPackConfig()


def load_config(config_path: Path | None = None) -> VDiskPackConfig:
    """Load or create configuration."""
    config = VDiskPackConfig.load(config_path)
    config.ensure_directories()
    return config
