"""
Tests for vdiskpack.platform.windows module.

Uses mocking to run without Windows tooling or admin privileges.
"""

from collections import namedtuple
from pathlib import Path
from unittest.mock import patch

import pytest

from vdiskpack.core.models import CapacityPlan
from vdiskpack.platform.base import CommandResult
from vdiskpack.platform.windows.backend import WindowsBackend
from vdiskpack.platform.windows.parsers import classify_robocopy_exit, parse_diskpart_errors

Partition = namedtuple("Partition", "device mountpoint fstype opts")

DISKPART_OK = """
Microsoft DiskPart version 10.0.22621.1

DiskPart successfully created the virtual disk file.
DiskPart successfully selected the virtual disk file.
  100 percent completed
DiskPart successfully attached the virtual disk file.
DiskPart succeeded in creating the specified partition.
DiskPart successfully formatted the volume.
DiskPart successfully assigned the drive letter or mount point.
"""

DISKPART_FAIL = """
Microsoft DiskPart version 10.0.22621.1

Virtual Disk Service error:
The file exists.
"""


class TestWindowsParsers:
    """Tests for Windows output parsers."""

    def test_diskpart_success_has_no_errors(self) -> None:
        assert parse_diskpart_errors(DISKPART_OK) == []

    def test_diskpart_errors(self) -> None:
        errors = parse_diskpart_errors(DISKPART_FAIL)
        assert "Virtual Disk Service error:" in errors
        assert "The file exists." in errors

    def test_diskpart_empty(self) -> None:
        assert parse_diskpart_errors("") == []

    @pytest.mark.parametrize("code", [0, 1, 2, 3, 4, 5, 6, 7])
    def test_robocopy_success_codes(self, code: int) -> None:
        assert classify_robocopy_exit(code)[0] is True

    @pytest.mark.parametrize("code", [8, 9, 16, 24])
    def test_robocopy_failure_codes(self, code: int) -> None:
        assert classify_robocopy_exit(code)[0] is False

    def test_robocopy_description(self) -> None:
        success, description = classify_robocopy_exit(3)
        assert success is True
        assert "files copied" in description
        assert "extra files" in description

    def test_robocopy_not_run(self) -> None:
        assert classify_robocopy_exit(-1)[0] is False


@pytest.mark.integration
class TestWindowsBackend:
    """Tests for WindowsBackend with mocked commands."""

    @pytest.fixture
    def backend(self) -> WindowsBackend:
        return WindowsBackend()

    @pytest.fixture
    def plan(self) -> CapacityPlan:
        return CapacityPlan(
            content_size_bytes=10_000_000_000,
            container_size_bytes=12_524_288_000,
            mount_token="Z",
        )

    def _capture_diskpart(self, backend: WindowsBackend, stdout: str, returncode: int = 0):
        scripts: list[str] = []

        def fake_run(command, timeout=300, check=True):
            assert command[0] == WindowsBackend.DISKPART
            assert command[1] == "/s"
            scripts.append(Path(command[2]).read_text())
            return CommandResult(returncode, stdout, "", command)

        return scripts, patch.object(backend, "run_command", side_effect=fake_run)

    def test_name(self, backend: WindowsBackend) -> None:
        assert backend.name == "windows"

    def test_create_script(self, backend: WindowsBackend, plan: CapacityPlan) -> None:
        script = backend.build_create_script(Path("C:/out/data.vhd"), plan, "ntfs", "DATA")
        assert script[0].startswith('create vdisk file="')
        assert "maximum=11945 type=expandable" in script[0]
        assert "attach vdisk" in script
        assert 'format fs=ntfs label="DATA" quick' in script
        assert script[-1] == "assign letter=Z"

    def test_create_script_rejects_unknown_filesystem(
        self, backend: WindowsBackend, plan: CapacityPlan
    ) -> None:
        with pytest.raises(ValueError):
            backend.build_create_script(Path("x.vhd"), plan, "ext4", "DATA")

    def test_create_container_success(self, backend: WindowsBackend, plan: CapacityPlan) -> None:
        scripts, patcher = self._capture_diskpart(backend, DISKPART_OK)
        with patcher:
            ok, message = backend.create_container(Path("data.vhd"), plan, "ntfs", "DATA")

        assert ok is True
        assert "Z:\\" in message
        assert "create vdisk" in scripts[0]

    def test_create_container_failure_reported_on_stdout(
        self, backend: WindowsBackend, plan: CapacityPlan
    ) -> None:
        _, patcher = self._capture_diskpart(backend, DISKPART_FAIL)
        with patcher:
            ok, message = backend.create_container(Path("data.vhd"), plan, "ntfs", "DATA")

        assert ok is False
        assert "The file exists." in message

    def test_detach_container(self, backend: WindowsBackend) -> None:
        scripts, patcher = self._capture_diskpart(
            backend, "DiskPart successfully detached the virtual disk file."
        )
        with patcher:
            ok, _ = backend.detach_container(Path("data.vhd"))

        assert ok is True
        assert "detach vdisk" in scripts[0]

    def test_detach_container_nonzero_exit(self, backend: WindowsBackend) -> None:
        _, patcher = self._capture_diskpart(backend, "", returncode=2147942405)
        with patcher:
            ok, message = backend.detach_container(Path("data.vhd"))
        assert ok is False
        assert "detach failed" in message

    def test_mirror_command(self, backend: WindowsBackend) -> None:
        cmd = backend.build_mirror_command(
            Path("src"), "Z:\\", ["*.vhd"], ["$RECYCLE.BIN"], threads=8, retries=2, wait_seconds=3
        )
        assert cmd[:4] == [WindowsBackend.ROBOCOPY, "src", "Z:\\", "/MIR"]
        assert "/SL" in cmd
        assert "/XJ" in cmd
        assert "/MT:8" in cmd
        assert "/R:2" in cmd
        assert "/W:3" in cmd
        assert cmd[cmd.index("/XF") + 1] == "*.vhd"
        assert cmd[cmd.index("/XD") + 1] == "$RECYCLE.BIN"

    def test_mirror_command_without_excludes(self, backend: WindowsBackend) -> None:
        cmd = backend.build_mirror_command(Path("src"), "Z:\\", [], [], threads=1)
        assert "/XF" not in cmd
        assert "/XD" not in cmd

    def test_mirror_success_exit_code(self, backend: WindowsBackend) -> None:
        with patch.object(
            backend, "run_command", return_value=CommandResult(1, "copied", "", [])
        ):
            ok, message = backend.mirror_directory(Path("src"), "Z:\\", [], [], threads=4)
        assert ok is True
        assert "files copied" in message

    def test_mirror_failure_exit_code(self, backend: WindowsBackend) -> None:
        with patch.object(
            backend, "run_command", return_value=CommandResult(8, "ERROR 5 Access is denied.", "", [])
        ):
            ok, message = backend.mirror_directory(Path("src"), "Z:\\", [], [], threads=4)
        assert ok is False
        assert "Access is denied" in message

    def test_used_mount_tokens(self, backend: WindowsBackend) -> None:
        partitions = [
            Partition("C:\\", "C:\\", "NTFS", "rw,fixed"),
            Partition("d:\\", "d:\\", "NTFS", "rw,fixed"),
            Partition("/dev/sda1", "/", "ext4", "rw"),
        ]
        with patch(
            "vdiskpack.platform.windows.backend.psutil.disk_partitions", return_value=partitions
        ):
            assert backend.used_mount_tokens() == {"C", "D"}

    def test_is_admin_uses_shell32(self, backend: WindowsBackend) -> None:
        with patch("vdiskpack.platform.windows.backend.ctypes") as fake_ctypes:
            fake_ctypes.windll.shell32.IsUserAnAdmin.return_value = 1
            assert backend.is_admin() is True

    def test_run_command_missing_tool(self, backend: WindowsBackend) -> None:
        result = backend.run_command(["definitely-not-a-real-tool-xyz"])
        assert result.success is False
        assert result.returncode == -1
