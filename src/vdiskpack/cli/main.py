"""
vdiskpack CLI Main Entry Point.

Provides the command-line interface for packing directories into
virtual-disk containers.
"""

from __future__ import annotations

import json
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Any, NoReturn

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from vdiskpack import __version__
from vdiskpack.core.config import DEFAULT_CONFIG_PATH, VDiskPackConfig, load_config
from vdiskpack.core.errors import PackError
from vdiskpack.core.logging import setup_logging
from vdiskpack.core.models import FormatPreference, PackOptions
from vdiskpack.core.packer import Packer
from vdiskpack.core.planner import plan_capacity
from vdiskpack.platform import get_platform_backend, is_admin
from vdiskpack.platform.base import ContainerBackend
from vdiskpack.platform.converter import detect_converter
from vdiskpack.platform.scan import measure_content

console = Console()


def fail(message: str, code: int = 1) -> NoReturn:
    """Print an error and exit."""
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(code)


def get_backend(ctx: click.Context) -> ContainerBackend:
    """Get or create the host backend from context."""
    if "backend" not in ctx.obj:
        try:
            ctx.obj["backend"] = get_platform_backend()
        except RuntimeError as e:
            fail(str(e))
    return ctx.obj["backend"]


def get_converter_path(ctx: click.Context) -> Path | None:
    """Detect the converter once per invocation."""
    if "converter_path" not in ctx.obj:
        config: VDiskPackConfig = ctx.obj["config"]
        ctx.obj["converter_path"] = detect_converter(config.converter.probe_paths)
    return ctx.obj["converter_path"]


def emit_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.version_option(version=__version__, prog_name="vdiskpack")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to the console")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """
    vdiskpack - Package a directory into a virtual-disk container.

    Creates a VHD sized for the directory, mirrors the files into it and,
    when VirtualBox is installed, converts it to a compacted VDI.
    """
    ctx.ensure_object(dict)

    if config:
        loaded = VDiskPackConfig.load(config)
        loaded.ensure_directories()
    else:
        loaded = load_config()

    if verbose:
        loaded.logging.level = "DEBUG"
    elif quiet or json_output:
        loaded.logging.level = "ERROR"

    ctx.obj["config"] = loaded
    ctx.obj["config_path"] = config or DEFAULT_CONFIG_PATH
    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet

    setup_logging(loaded.logging)


def _build_options(
    source: Path,
    output: Path | None,
    container_format: str,
    label: str | None,
    threads: int | None,
    exclude_file: tuple[str, ...],
    exclude_dir: tuple[str, ...],
    keep_vhd: bool,
    overwrite: bool,
    dry_run: bool,
) -> PackOptions:
    return PackOptions(
        source=source,
        output=output,
        format=FormatPreference.from_string(container_format),
        label=label,
        threads=threads,
        exclude_files=list(exclude_file),
        exclude_dirs=list(exclude_dir),
        keep_intermediate=True if keep_vhd else None,
        overwrite=overwrite,
        dry_run=dry_run,
    )


@cli.command("pack")
@click.argument("source", type=click.Path(path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Container path (default: next to SOURCE, named after it)",
)
@click.option(
    "--format",
    "container_format",
    type=click.Choice(["auto", "vhd", "vdi"]),
    default="auto",
    show_default=True,
    help="Output format; auto converts to VDI when VirtualBox is installed",
)
@click.option("--label", "-l", help="Volume label")
@click.option("--threads", "-t", type=click.IntRange(1, 128), help="Mirror threads")
@click.option("--exclude-file", multiple=True, help="File pattern to exclude (repeatable)")
@click.option("--exclude-dir", multiple=True, help="Directory name to exclude (repeatable)")
@click.option("--keep-vhd", is_flag=True, help="Keep the VHD after converting to VDI")
@click.option("--overwrite", is_flag=True, help="Replace existing output containers")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def pack(
    ctx: click.Context,
    source: Path,
    output: Path | None,
    container_format: str,
    label: str | None,
    threads: int | None,
    exclude_file: tuple[str, ...],
    exclude_dir: tuple[str, ...],
    keep_vhd: bool,
    overwrite: bool,
    dry_run: bool,
    yes: bool,
) -> None:
    """Pack SOURCE into a virtual-disk container."""
    config: VDiskPackConfig = ctx.obj["config"]
    json_output = ctx.obj.get("json_output", False)
    quiet = ctx.obj.get("quiet", False)

    packer = Packer(config, get_backend(ctx), get_converter_path(ctx))
    options = _build_options(
        source,
        output,
        container_format,
        label,
        threads,
        exclude_file,
        exclude_dir,
        keep_vhd,
        overwrite,
        dry_run,
    )

    scanning = nullcontext() if json_output else console.status("Scanning source...")
    try:
        with scanning:
            prepared = packer.prepare(options)
    except PackError as e:
        packer.save_failed_run(options, e)
        fail(e.message)

    if dry_run:
        if json_output:
            emit_json(
                {
                    "dry_run": True,
                    "scan": prepared.scan.to_dict(),
                    "plan": prepared.plan.to_dict(),
                    "container_path": str(prepared.vdi_path or prepared.vhd_path),
                    "preflight_passed": not prepared.preflight.has_errors,
                    "warnings": prepared.warnings,
                }
            )
        else:
            console.print(prepared.execution_plan.get_plan_text(), markup=False)
            console.print("\n[yellow]Dry run - nothing was created[/yellow]")
        return

    try:
        packer.check_preflight(prepared)
    except PackError as e:
        packer.save_failed_run(options, e, prepared)
        if not quiet and not json_output:
            console.print(prepared.preflight.get_summary(), markup=False)
        fail(e.message)

    if not quiet and not json_output:
        console.print(Panel(Text(prepared.execution_plan.get_plan_text()), title="Execution Plan"))

    if config.safety.require_confirmation and not yes:
        if not click.confirm("Proceed?", default=False):
            console.print("[yellow]Cancelled[/yellow]")
            return

    try:
        if quiet or json_output:
            result = packer.execute(prepared)
        else:
            with console.status("Packing...") as status:
                result = packer.execute(
                    prepared,
                    progress=lambda step: status.update(f"Packing: {step}..."),
                )
    except PackError as e:
        fail(e.message)

    if json_output:
        emit_json(result.to_dict())
        return

    for warning in result.warnings:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")

    fmt = result.format.name if result.format else "?"
    console.print(f"[green]✓ Created {fmt} container: {result.container_path}[/green]")


@cli.command("plan")
@click.argument("source", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--exclude-file", multiple=True, help="File pattern to exclude (repeatable)")
@click.option("--exclude-dir", multiple=True, help="Directory name to exclude (repeatable)")
@click.pass_context
def plan(
    ctx: click.Context,
    source: Path,
    exclude_file: tuple[str, ...],
    exclude_dir: tuple[str, ...],
) -> None:
    """Show the container size and drive letter SOURCE would get."""
    config: VDiskPackConfig = ctx.obj["config"]
    json_output = ctx.obj.get("json_output", False)

    with nullcontext() if json_output else console.status("Scanning source..."):
        scan = measure_content(
            source,
            list(config.mirror.exclude_files) + list(exclude_file),
            list(config.mirror.exclude_dirs) + list(exclude_dir),
        )

    if scan.is_empty:
        fail(f"No files to pack under {source} after exclusions")

    try:
        capacity = plan_capacity(
            scan.total_bytes,
            get_backend(ctx).used_mount_tokens(),
            config.planner,
        )
    except PackError as e:
        fail(e.message)

    if json_output:
        emit_json({"scan": scan.to_dict(), "plan": capacity.to_dict()})
        return

    table = Table(title=f"Capacity Plan for {source}")
    table.add_column("Item", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Files", str(scan.file_count))
    table.add_row("Excluded", str(scan.excluded_count))
    table.add_row(
        "Content size",
        f"{humanize.naturalsize(scan.total_bytes, binary=True)} ({scan.total_bytes:,} bytes)",
    )
    table.add_row(
        "Container size",
        f"{humanize.naturalsize(capacity.container_size_bytes, binary=True)} "
        f"({capacity.container_size_mib:,} MiB)",
    )
    table.add_row("Drive letter", capacity.mount_path)
    console.print(table)

    if scan.skipped:
        console.print(f"[yellow]{len(scan.skipped)} unreadable file(s) were not counted[/yellow]")


@cli.command("tools")
@click.pass_context
def tools(ctx: click.Context) -> None:
    """Report the external tooling available on this host."""
    json_output = ctx.obj.get("json_output", False)
    converter_path = get_converter_path(ctx)
    admin = is_admin()

    if json_output:
        emit_json(
            {
                "converter": str(converter_path) if converter_path else None,
                "default_format": "vdi" if converter_path else "vhd",
                "admin": admin,
            }
        )
        return

    converter_text = (
        f"[green]{converter_path}[/green]" if converter_path else "[yellow]not found[/yellow]"
    )
    panel = Panel(
        f"""[cyan]VBoxManage:[/cyan] {converter_text}
[cyan]Default format:[/cyan] {"VDI (compacted)" if converter_path else "VHD (portable)"}
[cyan]Administrator:[/cyan] {"Yes" if admin else "No"}""",
        title="Tooling",
    )
    console.print(panel)


@cli.group("config")
def config_group() -> None:
    """Inspect or create the configuration file."""


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration."""
    config: VDiskPackConfig = ctx.obj["config"]
    emit_json(config.model_dump(mode="json"))


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.option("--path", "target", type=click.Path(path_type=Path), help="Where to write")
@click.pass_context
def config_init(ctx: click.Context, force: bool, target: Path | None) -> None:
    """Write a default configuration file."""
    target = target or ctx.obj["config_path"]
    if target.exists() and not force:
        fail(f"{target} already exists; pass --force to overwrite")

    VDiskPackConfig().save(target)
    console.print(f"[green]✓ Wrote default configuration to {target}[/green]")


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except PackError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
