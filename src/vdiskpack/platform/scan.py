"""
Directory scanning helpers for measuring the content to pack.
"""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Iterable, Iterator

from vdiskpack.core.models import ScanResult


def _match_exclude(path: Path, exclude_patterns: Iterable[str]) -> bool:
    for pattern in exclude_patterns:
        if fnmatch.fnmatch(path.as_posix(), pattern) or fnmatch.fnmatch(path.name, pattern):
            return True
    return False


def iter_files(
    root: Path,
    exclude_files: Iterable[str],
    exclude_dirs: Iterable[str],
    *,
    follow_symlinks: bool = False,
    excluded: list[Path] | None = None,
) -> Iterator[Path]:
    """
    Yield regular files under root, pruning excluded directories.

    When `excluded` is given, every pruned file or directory is appended to it.
    """
    exclude_files = list(exclude_files)
    exclude_dirs = list(exclude_dirs)
    root = root.resolve()

    for dirpath, dirnames, filenames in os.walk(root, followlinks=follow_symlinks):
        current = Path(dirpath)
        kept = []
        for d in dirnames:
            if _match_exclude(current / d, exclude_dirs):
                if excluded is not None:
                    excluded.append(current / d)
            else:
                kept.append(d)
        dirnames[:] = kept

        for filename in filenames:
            path = current / filename
            if path.is_symlink():
                continue
            if _match_exclude(path, exclude_files):
                if excluded is not None:
                    excluded.append(path)
                continue
            yield path


def measure_content(
    root: Path,
    exclude_files: Iterable[str],
    exclude_dirs: Iterable[str],
    extra_paths: Iterable[Path] = (),
) -> ScanResult:
    """
    Sum the sizes of all files under root after exclusions.

    extra_paths lists concrete files to leave out, such as the output
    container when it is written inside the source tree.
    """
    resolved_extra = {Path(p).resolve() for p in extra_paths}
    excluded: list[Path] = []
    result = ScanResult(root=root)

    for path in iter_files(root, exclude_files, exclude_dirs, excluded=excluded):
        if path in resolved_extra:
            result.excluded_count += 1
            continue
        try:
            size = path.stat().st_size
        except OSError:
            result.skipped.append(str(path))
            continue
        result.total_bytes += size
        result.file_count += 1

    result.excluded_count += len(excluded)
    return result


def default_output_path(source: Path) -> Path:
    """Place the container next to the source, named after it."""
    source = source.resolve()
    name = source.name or "vdisk"
    return source.parent / f"{name}.vhd"
