"""
Capacity planning.

Sizes the container from the scanned content size and picks a free drive
letter for mounting it. Everything here is pure; the caller supplies the
set of letters currently in use.
"""

from __future__ import annotations

import string
from collections.abc import Iterable
from typing import TYPE_CHECKING

from vdiskpack.core.errors import NoFreeTokenError
from vdiskpack.core.models import MIB, CapacityPlan

if TYPE_CHECKING:
    from vdiskpack.core.config import PlannerConfig

RESERVE_BYTES = 500 * MIB
BUFFER_PERCENT = 20
MOUNT_TOKENS = string.ascii_uppercase


def compute_container_size(
    content_size_bytes: int,
    *,
    buffer_percent: int = BUFFER_PERCENT,
    reserve_bytes: int = RESERVE_BYTES,
) -> int:
    """
    Return ceil(content * (100 + buffer_percent) / 100) + reserve_bytes.

    Integer arithmetic throughout, so the result is exact at any size.
    """
    if content_size_bytes < 0:
        raise ValueError(f"Content size must be non-negative, got {content_size_bytes}")

    scaled = -(-content_size_bytes * (100 + buffer_percent) // 100)
    return scaled + reserve_bytes


def normalize_token(token: str) -> str:
    """Reduce 'c', 'C:' or 'c:\\' to 'C'."""
    return token.strip()[:1].upper()


def select_mount_token(used_tokens: Iterable[str]) -> str:
    """
    Pick the highest free drive letter.

    Searches Z down to A so the choice stays clear of the low letters the
    host hands out first. Raises NoFreeTokenError when all 26 are taken.
    """
    used = {normalize_token(t) for t in used_tokens if t and t.strip()}

    for token in reversed(MOUNT_TOKENS):
        if token not in used:
            return token

    raise NoFreeTokenError(
        "No free drive letter available: all letters A-Z are in use. "
        "Unmount a volume and re-run."
    )


def plan_capacity(
    content_size_bytes: int,
    used_tokens: Iterable[str],
    config: PlannerConfig | None = None,
) -> CapacityPlan:
    """Build the capacity plan for a run."""
    if config is None:
        buffer_percent, reserve_bytes = BUFFER_PERCENT, RESERVE_BYTES
    else:
        buffer_percent, reserve_bytes = config.buffer_percent, config.reserve_bytes

    return CapacityPlan(
        content_size_bytes=content_size_bytes,
        container_size_bytes=compute_container_size(
            content_size_bytes,
            buffer_percent=buffer_percent,
            reserve_bytes=reserve_bytes,
        ),
        mount_token=select_mount_token(used_tokens),
    )
