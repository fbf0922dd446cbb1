"""
vdiskpack pack pipeline.

Runs the strictly sequential sequence of a pack:
scan -> plan -> preflight -> provision -> copy -> detach -> convert -> cleanup.
Each step gates the next; nothing runs in parallel except inside the
mirroring tool.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import humanize

from vdiskpack.core.config import VDiskPackConfig
from vdiskpack.core.errors import (
    ConversionError,
    CopyError,
    EmptySourceError,
    PackError,
    PreflightError,
    ProvisioningError,
)
from vdiskpack.core.logging import OperationLogger, get_logger
from vdiskpack.core.models import (
    CapacityPlan,
    ContainerFormat,
    FormatPreference,
    PackOptions,
    PackReport,
    PackResult,
    ScanResult,
)
from vdiskpack.core.planner import plan_capacity
from vdiskpack.core.safety import (
    ExecutionPlan,
    PreflightReport,
    check_source_directory,
    create_standard_preflight_checker,
)
from vdiskpack.platform.base import ContainerBackend
from vdiskpack.platform.converter import VirtualBoxConverter
from vdiskpack.platform.scan import default_output_path, measure_content

logger = get_logger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class PreparedRun:
    """Everything decided before the first side effect of a pack run."""

    options: PackOptions
    scan: ScanResult
    plan: CapacityPlan
    vhd_path: Path
    vdi_path: Path | None
    exclude_files: list[str]
    exclude_dirs: list[str]
    label: str
    threads: int
    keep_intermediate: bool
    preflight: PreflightReport
    execution_plan: ExecutionPlan
    warnings: list[str] = field(default_factory=list)
    step_durations: dict[str, float] = field(default_factory=dict)

    @property
    def convert(self) -> bool:
        return self.vdi_path is not None

    @property
    def output_paths(self) -> list[Path]:
        return [p for p in (self.vhd_path, self.vdi_path) if p is not None]


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


class Packer:
    """
    Packs a directory into a virtual-disk container.

    The converter is detected once by the caller and passed in as a path
    (or None when VirtualBox is not installed).
    """

    def __init__(
        self,
        config: VDiskPackConfig,
        backend: ContainerBackend,
        converter_path: Path | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.converter_path = converter_path if config.converter.enabled else None

    # ==================== Preparation ====================

    def _resolve_outputs(self, options: PackOptions) -> tuple[Path, Path | None]:
        base = (options.output or default_output_path(options.source)).resolve()
        vhd_path = base.with_suffix(ContainerFormat.VHD.suffix)

        if options.format == FormatPreference.VHD:
            return vhd_path, None

        if options.format == FormatPreference.VDI and self.converter_path is None:
            raise PreflightError(
                "VDI output requested but VBoxManage was not found. "
                "Install VirtualBox or use --format vhd."
            )

        if self.converter_path is None:
            return vhd_path, None
        return vhd_path, base.with_suffix(ContainerFormat.VDI.suffix)

    def prepare(self, options: PackOptions) -> PreparedRun:
        """
        Scan, plan and run preflight checks without touching any disk.

        Raises EmptySourceError, NoFreeTokenError or PreflightError.
        """
        source = options.source.resolve()
        source_check = check_source_directory({"source": source})
        if not source_check.passed:
            raise PreflightError(source_check.message)

        vhd_path, vdi_path = self._resolve_outputs(options)
        outputs = [p for p in (vhd_path, vdi_path) if p is not None]

        exclude_files = list(self.config.mirror.exclude_files) + list(options.exclude_files)
        exclude_dirs = list(self.config.mirror.exclude_dirs) + list(options.exclude_dirs)
        # the mirror must skip our own outputs when they sit inside the source
        for path in outputs:
            if _is_within(path, source):
                exclude_files.append(str(path))

        durations: dict[str, float] = {}
        with self._timed("scan", durations, source=str(source)) as op:
            scan = measure_content(source, exclude_files, exclude_dirs, extra_paths=outputs)
            op.update(total_bytes=scan.total_bytes, file_count=scan.file_count)

        if scan.is_empty:
            raise EmptySourceError(
                f"No files to pack under {source} after exclusions "
                f"({scan.excluded_count} excluded, {len(scan.skipped)} unreadable)."
            )

        with self._timed("plan", durations, content_bytes=scan.total_bytes) as op:
            plan = plan_capacity(
                scan.total_bytes,
                self.backend.used_mount_tokens(),
                self.config.planner,
            )
            op.update(
                container_bytes=plan.container_size_bytes,
                mount_token=plan.mount_token,
            )

        # converting clones the content next to the VHD before it is removed
        required_bytes = plan.container_size_bytes
        if vdi_path is not None:
            required_bytes += scan.total_bytes

        preflight = create_standard_preflight_checker().run_checks(
            {
                "require_admin": self.config.safety.require_admin,
                "is_admin": self.backend.is_admin(),
                "source": source,
                "output_paths": outputs,
                "overwrite": options.overwrite,
                "free_space_check": self.config.safety.free_space_check,
                "output_dir": vhd_path.parent,
                "required_bytes": required_bytes,
            }
        )

        warnings = [f"{c.name}: {c.message}" for c in preflight.checks if c.severity == "warning"]
        if scan.skipped:
            warnings.append(f"{len(scan.skipped)} unreadable file(s) were not counted")

        label = options.label or self.config.container.label
        threads = options.threads or self.config.mirror.threads
        keep_intermediate = (
            options.keep_intermediate
            if options.keep_intermediate is not None
            else self.config.converter.keep_intermediate
        )

        prepared = PreparedRun(
            options=options,
            scan=scan,
            plan=plan,
            vhd_path=vhd_path,
            vdi_path=vdi_path,
            exclude_files=exclude_files,
            exclude_dirs=exclude_dirs,
            label=label,
            threads=threads,
            keep_intermediate=keep_intermediate,
            preflight=preflight,
            execution_plan=ExecutionPlan(description="", target="", steps=[]),
            warnings=warnings,
            step_durations=durations,
        )
        prepared.execution_plan = self.build_execution_plan(prepared)
        return prepared

    def build_execution_plan(self, prepared: PreparedRun) -> ExecutionPlan:
        """Describe the steps a prepared run will take."""
        plan = prepared.plan
        container = self.config.container
        size = humanize.naturalsize(plan.container_size_bytes, binary=True)

        steps = [
            f"Create {container.vhd_type} VHD {prepared.vhd_path} ({size}, {plan.container_size_mib} MiB)",
            f"Format {container.filesystem.upper()} volume '{prepared.label}' and mount it at {plan.mount_path}",
            f"Mirror {prepared.options.source} to {plan.mount_path} with {prepared.threads} threads",
            f"Detach {prepared.vhd_path}",
        ]
        if prepared.vdi_path is not None:
            compact = " and compact it" if self.config.converter.compact else ""
            steps.append(f"Convert to VDI {prepared.vdi_path}{compact}")
            if not prepared.keep_intermediate:
                steps.append(f"Delete intermediate {prepared.vhd_path}")

        return ExecutionPlan(
            description=(
                f"Pack {humanize.naturalsize(plan.content_size_bytes, binary=True)} "
                f"({prepared.scan.file_count} files) into a virtual disk"
            ),
            target=str(prepared.vdi_path or prepared.vhd_path),
            steps=steps,
            warnings=list(prepared.warnings),
            preflight_report=prepared.preflight,
        )

    # ==================== Execution ====================

    def run(self, options: PackOptions, progress: ProgressCallback | None = None) -> PackResult:
        """Prepare and execute a pack run in one go."""
        result = PackResult(success=False, source=options.source, dry_run=options.dry_run)
        try:
            prepared = self.prepare(options)
        except PackError as e:
            self.save_failed_run(options, e)
            raise

        if options.dry_run:
            result.success = True
            result.scan = prepared.scan
            result.plan = prepared.plan
            result.container_path = prepared.vdi_path or prepared.vhd_path
            result.format = ContainerFormat.VDI if prepared.convert else ContainerFormat.VHD
            result.warnings.extend(prepared.warnings)
            result.step_durations.update(prepared.step_durations)
            result.end_time = datetime.now()
            return result

        return self.execute(prepared, progress, result)

    def execute(
        self,
        prepared: PreparedRun,
        progress: ProgressCallback | None = None,
        result: PackResult | None = None,
    ) -> PackResult:
        """
        Provision, copy, detach and optionally convert.

        Raises PreflightError, ProvisioningError or CopyError; a failed
        conversion is reported as a warning and the VHD is kept.
        """
        if result is None:
            result = PackResult(success=False, source=prepared.options.source)
        result.scan = prepared.scan
        result.plan = prepared.plan
        result.warnings.extend(prepared.warnings)
        result.step_durations.update(prepared.step_durations)

        try:
            self.check_preflight(prepared)
            self._remove_existing(prepared)
            self._provision(prepared, result, progress)
            self._copy(prepared, result, progress)
            self._detach(prepared, result, progress)
            result.container_path = prepared.vhd_path
            result.format = ContainerFormat.VHD

            if prepared.convert:
                self._convert(prepared, result, progress)

            result.success = True
        except PackError as e:
            result.error = e.message
            raise
        finally:
            result.end_time = datetime.now()
            self._save_report(result)

        logger.info(
            "Pack completed",
            container=str(result.container_path),
            format=result.format.value if result.format else None,
            duration_seconds=result.duration_seconds,
        )
        return result

    def check_preflight(self, prepared: PreparedRun) -> None:
        """Raise PreflightError when any error-level check failed."""
        if prepared.preflight.has_errors:
            failures = "; ".join(c.message for c in prepared.preflight.failures)
            raise PreflightError(f"Preflight checks failed: {failures}")

    def save_failed_run(
        self,
        options: PackOptions,
        error: PackError,
        prepared: PreparedRun | None = None,
    ) -> PackResult:
        """Record a run that stopped before execution and save its report."""
        result = PackResult(success=False, source=options.source, dry_run=options.dry_run)
        if prepared is not None:
            result.scan = prepared.scan
            result.plan = prepared.plan
            result.warnings.extend(prepared.warnings)
            result.step_durations.update(prepared.step_durations)
        result.error = error.message
        result.end_time = datetime.now()
        self._save_report(result)
        return result

    @contextmanager
    def _timed(
        self, name: str, durations: dict[str, float], **context: Any
    ) -> Iterator[OperationLogger]:
        op = OperationLogger(name, logger, **context)
        try:
            with op:
                yield op
        finally:
            durations[name] = round(op.duration_seconds, 3)

    def _step(self, name: str, result: PackResult, progress: ProgressCallback | None) -> None:
        result.steps.append(name)
        if progress is not None:
            progress(name)

    def _remove_existing(self, prepared: PreparedRun) -> None:
        if not prepared.options.overwrite:
            return
        for path in prepared.output_paths:
            if path.exists():
                logger.warning("Removing existing output", path=str(path))
                path.unlink()

    def _provision(
        self,
        prepared: PreparedRun,
        result: PackResult,
        progress: ProgressCallback | None,
    ) -> None:
        self._step("provision", result, progress)
        container = self.config.container
        with self._timed(
            "provision",
            result.step_durations,
            container=str(prepared.vhd_path),
            size_mib=prepared.plan.container_size_mib,
            mount_token=prepared.plan.mount_token,
        ):
            ok, message = self.backend.create_container(
                prepared.vhd_path,
                prepared.plan,
                container.filesystem,
                prepared.label,
                container.vhd_type,
            )
            if not ok:
                if prepared.vhd_path.exists():
                    self._try_detach(prepared.vhd_path)
                raise ProvisioningError(
                    f"{message}. Nothing was copied; re-run after fixing the cause."
                )

    def _copy(
        self,
        prepared: PreparedRun,
        result: PackResult,
        progress: ProgressCallback | None,
    ) -> None:
        self._step("copy", result, progress)
        mirror = self.config.mirror
        with self._timed(
            "copy",
            result.step_durations,
            source=str(prepared.options.source),
            destination=prepared.plan.mount_path,
            threads=prepared.threads,
        ):
            ok, message = self.backend.mirror_directory(
                prepared.options.source.resolve(),
                prepared.plan.mount_path,
                prepared.exclude_files,
                prepared.exclude_dirs,
                prepared.threads,
                mirror.retries,
                mirror.wait_seconds,
            )
            if not ok:
                self._try_detach(prepared.vhd_path)
                raise CopyError(
                    f"{message}. The partial container was left at {prepared.vhd_path} "
                    "for inspection; re-run to start over."
                )

    def _detach(
        self,
        prepared: PreparedRun,
        result: PackResult,
        progress: ProgressCallback | None,
    ) -> None:
        self._step("detach", result, progress)
        with self._timed("detach", result.step_durations, container=str(prepared.vhd_path)):
            ok, message = self.backend.detach_container(prepared.vhd_path)
            if not ok:
                raise ProvisioningError(
                    f"{message}. The container is still mounted at {prepared.plan.mount_path}; "
                    "detach it manually before re-running."
                )

    def _try_detach(self, container_path: Path) -> None:
        ok, message = self.backend.detach_container(container_path)
        if not ok:
            logger.error("Cleanup detach failed", container=str(container_path), error=message)

    def _convert(
        self,
        prepared: PreparedRun,
        result: PackResult,
        progress: ProgressCallback | None,
    ) -> None:
        vdi_path = prepared.vdi_path
        if vdi_path is None or self.converter_path is None:
            return

        self._step("convert", result, progress)
        converter = VirtualBoxConverter(self.converter_path, self.backend.run_command)

        try:
            with self._timed("convert", result.step_durations, target=str(vdi_path)):
                converter.convert(
                    prepared.vhd_path,
                    vdi_path,
                    compact=self.config.converter.compact,
                )
        except ConversionError as e:
            result.warnings.append(
                f"Conversion failed, keeping the portable VHD at {prepared.vhd_path}: {e.message}"
            )
            return

        result.container_path = vdi_path
        result.format = ContainerFormat.VDI

        if not prepared.keep_intermediate:
            self._step("cleanup", result, progress)
            try:
                prepared.vhd_path.unlink()
            except OSError as e:
                result.warnings.append(f"Could not delete intermediate {prepared.vhd_path}: {e}")

    def _save_report(self, result: PackResult) -> None:
        report = PackReport(
            result=result,
            converter=str(self.converter_path) if self.converter_path else None,
            config_snapshot=self.config.model_dump(mode="json"),
        )
        path = self.config.get_report_file()
        try:
            report.save(path)
        except OSError as e:
            logger.warning("Could not save run report", path=str(path), error=str(e))
            return
        logger.debug("Run report saved", path=str(path))
