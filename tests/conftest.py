"""
Pytest configuration and fixtures for vdiskpack tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vdiskpack.platform.base import CommandResult, ContainerBackend  # noqa: E402


class FakeBackend(ContainerBackend):
    """In-memory backend that records calls instead of touching disks."""

    def __init__(self) -> None:
        self.admin = True
        self.tokens: set[str] = {"C", "D"}
        self.create_ok = True
        self.mirror_ok = True
        self.detach_ok = True
        self.command_failures: set[str] = set()
        self.calls: list[tuple[str, tuple]] = []
        self.commands: list[list[str]] = []

    @property
    def name(self) -> str:
        return "fake"

    def is_admin(self) -> bool:
        return self.admin

    def run_command(self, command, timeout=300, check=True) -> CommandResult:
        self.commands.append(list(command))
        verb = command[1] if len(command) > 1 else ""
        if verb in self.command_failures:
            return CommandResult(1, "", f"{verb} failed", command)
        if verb == "clonemedium":
            Path(command[4]).write_bytes(b"vdi")
        return CommandResult(0, "", "", command)

    def used_mount_tokens(self) -> set[str]:
        return set(self.tokens)

    def create_container(self, container_path, plan, filesystem, label, vhd_type="expandable"):
        self.calls.append(("create", (container_path, plan, filesystem, label, vhd_type)))
        if not self.create_ok:
            return False, "Container creation failed: Virtual Disk Service error"
        Path(container_path).write_bytes(b"vhd")
        return True, f"Created {container_path}"

    def detach_container(self, container_path):
        self.calls.append(("detach", (container_path,)))
        if not self.detach_ok:
            return False, "Container detach failed: Access is denied."
        return True, f"Detached {container_path}"

    def mirror_directory(
        self,
        source,
        destination,
        exclude_files,
        exclude_dirs,
        threads,
        retries=1,
        wait_seconds=1,
    ):
        self.calls.append(
            ("mirror", (source, destination, list(exclude_files), list(exclude_dirs), threads))
        )
        if not self.mirror_ok:
            return False, "Mirror failed (some files or directories could not be copied, exit 8)"
        return True, "Mirror completed: files copied"

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def source_tree(temp_dir: Path) -> Path:
    """A small directory tree to pack."""
    root = temp_dir / "data"
    (root / "docs").mkdir(parents=True)
    (root / "docs" / "a.txt").write_bytes(b"a" * 1000)
    (root / "b.bin").write_bytes(b"b" * 2000)
    (root / "old.vhd").write_bytes(b"x" * 5000)
    return root


@pytest.fixture
def sample_config(temp_dir: Path) -> "VDiskPackConfig":
    """Create a sample configuration for testing."""
    from vdiskpack.core.config import VDiskPackConfig

    config = VDiskPackConfig(report_directory=temp_dir / "reports")
    config.logging.log_directory = temp_dir / "logs"
    config.logging.file_enabled = False
    config.logging.console_enabled = False
    config.safety.free_space_check = False
    config.converter.probe_paths = []
    config.ensure_directories()
    return config


@pytest.fixture
def config_file(sample_config: "VDiskPackConfig", temp_dir: Path) -> Path:
    """Write the sample configuration to disk for CLI tests."""
    path = temp_dir / "config.json"
    sample_config.save(path)
    return path


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
