"""
vdiskpack preflight checks.

Implements the checks run before anything is provisioned, and the
human-readable execution plan shown for dry runs and confirmation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import humanize
import psutil

from vdiskpack.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def has_errors(self) -> bool:
        return any(c.severity == "error" and not c.passed for c in self.checks)

    @property
    def failures(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.passed and c.severity == "error"]

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [f"Preflight Check Report ({self.timestamp.isoformat()})"]
        lines.append("=" * 60)

        passed = sum(1 for c in self.checks if c.passed)
        total = len(self.checks)
        lines.append(f"Results: {passed}/{total} checks passed")
        lines.append("")

        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")
            if check.details:
                for key, value in check.details.items():
                    lines.append(f"    {key}: {value}")

        return "\n".join(lines)


@dataclass
class ExecutionPlan:
    """Human-readable execution plan for a pack run."""

    description: str
    target: str
    steps: list[str]
    warnings: list[str] = field(default_factory=list)
    preflight_report: PreflightReport | None = None

    def get_plan_text(self) -> str:
        """Get human-readable plan text."""
        lines = ["=" * 60]
        lines.append(f"OPERATION: {self.description}")
        lines.append(f"TARGET: {self.target}")
        lines.append("=" * 60)

        if self.warnings:
            lines.append("")
            lines.append("WARNINGS:")
            for warning in self.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        lines.append("EXECUTION STEPS:")
        for i, step in enumerate(self.steps, 1):
            lines.append(f"   {i}. {step}")

        if self.preflight_report:
            lines.append("")
            lines.append(self.preflight_report.get_summary())

        return "\n".join(lines)


CheckFunc = Callable[[dict[str, Any]], "PreflightCheck | bool"]


class PreflightChecker:
    """Performs preflight checks before a pack run."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, CheckFunc]] = []

    def add_check(self, name: str, check_func: CheckFunc) -> None:
        """Add a preflight check function."""
        self._checks.append((name, check_func))

    def run_checks(self, context: dict[str, Any]) -> PreflightReport:
        """Run all preflight checks and return report."""
        report = PreflightReport()

        for name, check_func in self._checks:
            try:
                result = check_func(context)
                if isinstance(result, PreflightCheck):
                    report.checks.append(result)
                elif isinstance(result, bool):
                    report.checks.append(
                        PreflightCheck(
                            name=name,
                            passed=result,
                            message="Passed" if result else "Failed",
                            severity="info" if result else "error",
                        )
                    )
            except Exception as e:
                logger.warning("Preflight check raised", check=name, error=str(e))
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity="error",
                    )
                )

        return report


def check_admin(context: dict[str, Any]) -> PreflightCheck:
    """Check that the process is elevated when elevation is required."""
    if not context.get("require_admin", True):
        return PreflightCheck(
            name="Administrator",
            passed=True,
            message="Elevation check disabled",
        )

    if context.get("is_admin", False):
        return PreflightCheck(
            name="Administrator",
            passed=True,
            message="Running with administrator privileges",
        )

    return PreflightCheck(
        name="Administrator",
        passed=False,
        message="diskpart requires administrator privileges; re-run from an elevated prompt",
        severity="error",
    )


def check_source_directory(context: dict[str, Any]) -> PreflightCheck:
    """Check that the source is an existing directory."""
    source: Path | None = context.get("source")

    if source is None or not source.exists():
        return PreflightCheck(
            name="Source Directory",
            passed=False,
            message=f"Source does not exist: {source}",
            severity="error",
        )

    if not source.is_dir():
        return PreflightCheck(
            name="Source Directory",
            passed=False,
            message=f"Source is not a directory: {source}",
            severity="error",
        )

    return PreflightCheck(
        name="Source Directory",
        passed=True,
        message=f"Source directory {source}",
    )


def check_output_available(context: dict[str, Any]) -> PreflightCheck:
    """Check that no output container would be overwritten."""
    outputs: list[Path] = context.get("output_paths", [])
    existing = [str(p) for p in outputs if p.exists()]

    if existing and not context.get("overwrite", False):
        return PreflightCheck(
            name="Output Path",
            passed=False,
            message="Output already exists; remove it or pass --overwrite",
            severity="error",
            details={"existing": ", ".join(existing)},
        )

    if existing:
        return PreflightCheck(
            name="Output Path",
            passed=True,
            message="Existing output will be replaced",
            severity="warning",
            details={"existing": ", ".join(existing)},
        )

    return PreflightCheck(
        name="Output Path",
        passed=True,
        message="Output path is free",
    )


def check_free_space(context: dict[str, Any]) -> PreflightCheck:
    """Check that the output volume can hold the full-size container."""
    if not context.get("free_space_check", True):
        return PreflightCheck(
            name="Free Space",
            passed=True,
            message="Free space check disabled",
        )

    output_dir: Path | None = context.get("output_dir")
    required = context.get("required_bytes", 0)

    if output_dir is None or not output_dir.exists():
        return PreflightCheck(
            name="Free Space",
            passed=False,
            message=f"Output directory does not exist: {output_dir}",
            severity="error",
        )

    free = psutil.disk_usage(str(output_dir)).free
    details = {
        "required": humanize.naturalsize(required, binary=True),
        "available": humanize.naturalsize(free, binary=True),
    }

    if free < required:
        return PreflightCheck(
            name="Free Space",
            passed=False,
            message="Not enough free space for the container",
            severity="error",
            details=details,
        )

    return PreflightCheck(
        name="Free Space",
        passed=True,
        message="Sufficient free space",
        details=details,
    )


def create_standard_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with standard checks."""
    checker = PreflightChecker()
    checker.add_check("Administrator", check_admin)
    checker.add_check("Source Directory", check_source_directory)
    checker.add_check("Output Path", check_output_available)
    checker.add_check("Free Space", check_free_space)
    return checker
