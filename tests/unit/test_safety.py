"""
Tests for vdiskpack.core.safety module.
"""

from collections import namedtuple
from pathlib import Path
from unittest.mock import patch

from vdiskpack.core.safety import (
    ExecutionPlan,
    PreflightCheck,
    PreflightChecker,
    PreflightReport,
    check_admin,
    check_free_space,
    check_output_available,
    check_source_directory,
    create_standard_preflight_checker,
)

DiskUsage = namedtuple("DiskUsage", "total used free percent")


class TestPreflightReport:
    """Tests for PreflightReport."""

    def test_all_passed(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=True, message="OK"),
            ]
        )
        assert report.all_passed is True
        assert report.has_errors is False

    def test_has_errors(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=False, message="Bad", severity="error"),
            ]
        )
        assert report.has_errors is True
        assert [c.name for c in report.failures] == ["Check 2"]

    def test_get_summary(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=False, message="Failed"),
            ]
        )
        summary = report.get_summary()
        assert "1/2 checks passed" in summary
        assert "Check 2" in summary


class TestPreflightChecker:
    """Tests for PreflightChecker."""

    def test_bool_results(self) -> None:
        checker = PreflightChecker()
        checker.add_check("ok", lambda ctx: True)
        checker.add_check("bad", lambda ctx: False)

        report = checker.run_checks({})

        assert report.checks[0].passed is True
        assert report.checks[1].passed is False
        assert report.has_errors is True

    def test_exception_becomes_failure(self) -> None:
        def broken(ctx):
            raise RuntimeError("boom")

        checker = PreflightChecker()
        checker.add_check("broken", broken)

        report = checker.run_checks({})

        assert report.checks[0].passed is False
        assert "boom" in report.checks[0].message

    def test_standard_checker_has_all_checks(self, temp_dir: Path) -> None:
        report = create_standard_preflight_checker().run_checks(
            {
                "is_admin": True,
                "source": temp_dir,
                "output_paths": [],
                "free_space_check": False,
            }
        )
        assert [c.name for c in report.checks] == [
            "Administrator",
            "Source Directory",
            "Output Path",
            "Free Space",
        ]
        assert report.all_passed is True


class TestChecks:
    """Tests for the standard checks."""

    def test_admin_required_and_missing(self) -> None:
        result = check_admin({"require_admin": True, "is_admin": False})
        assert result.passed is False
        assert result.severity == "error"

    def test_admin_not_required(self) -> None:
        assert check_admin({"require_admin": False, "is_admin": False}).passed is True

    def test_source_missing(self, temp_dir: Path) -> None:
        assert check_source_directory({"source": temp_dir / "nope"}).passed is False

    def test_source_is_file(self, temp_dir: Path) -> None:
        path = temp_dir / "file.txt"
        path.write_text("x")
        result = check_source_directory({"source": path})
        assert result.passed is False
        assert "not a directory" in result.message

    def test_output_exists(self, temp_dir: Path) -> None:
        existing = temp_dir / "out.vhd"
        existing.write_bytes(b"")
        result = check_output_available({"output_paths": [existing]})
        assert result.passed is False

    def test_output_exists_with_overwrite(self, temp_dir: Path) -> None:
        existing = temp_dir / "out.vhd"
        existing.write_bytes(b"")
        result = check_output_available({"output_paths": [existing], "overwrite": True})
        assert result.passed is True
        assert result.severity == "warning"

    def test_free_space_insufficient(self, temp_dir: Path) -> None:
        with patch("vdiskpack.core.safety.psutil.disk_usage") as usage:
            usage.return_value = DiskUsage(100, 90, 10, 90.0)
            result = check_free_space({"output_dir": temp_dir, "required_bytes": 11})
        assert result.passed is False
        assert "required" in result.details

    def test_free_space_sufficient(self, temp_dir: Path) -> None:
        with patch("vdiskpack.core.safety.psutil.disk_usage") as usage:
            usage.return_value = DiskUsage(100, 0, 100, 0.0)
            result = check_free_space({"output_dir": temp_dir, "required_bytes": 100})
        assert result.passed is True

    def test_free_space_missing_directory(self, temp_dir: Path) -> None:
        result = check_free_space({"output_dir": temp_dir / "missing", "required_bytes": 1})
        assert result.passed is False


class TestExecutionPlan:
    """Tests for ExecutionPlan."""

    def test_plan_text(self) -> None:
        plan = ExecutionPlan(
            description="Pack 1 KiB",
            target="out.vhd",
            steps=["Create", "Mirror"],
            warnings=["careful"],
        )
        text = plan.get_plan_text()
        assert "OPERATION: Pack 1 KiB" in text
        assert "1. Create" in text
        assert "2. Mirror" in text
        assert "careful" in text
