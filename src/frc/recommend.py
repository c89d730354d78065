"""Static memory recommendations based on installed RAM."""

from __future__ import annotations

import logging

import psutil

from frc.errors import InvalidMemory
from frc.runtime import RuntimeKind

logger = logging.getLogger(__name__)

FALLBACK_SYSTEM_MB = 16 * 1024

# (minimum system GB, default MB, suggested range)
_TABLE: list[tuple[int, int, str]] = [
    (64, 16384, "For 64GB+: 16384-24576 MB for large projects"),
    (32, 8192, "For 32GB: 8192-12288 MB for large projects"),
    (16, 4096, "For 16GB: 4096-6144 MB for large projects"),
    (0, 2048, "For <16GB: 2048-4096 MB"),
]

HIGH_USAGE_PERCENT = 75
LOW_USAGE_PERCENT = 10


def system_memory_mb() -> int:
    """Total physical memory in MB, or 16 GB if it cannot be determined."""
    try:
        return int(psutil.virtual_memory().total // (1024 * 1024))
    except (OSError, RuntimeError, psutil.Error) as e:
        logger.debug("Cannot read system memory (%s), assuming %d MB", e, FALLBACK_SYSTEM_MB)
        return FALLBACK_SYSTEM_MB


def _row(system_mb: int) -> tuple[int, int, str]:
    system_gb = system_mb // 1024
    for row in _TABLE:
        if system_gb >= row[0]:
            return row
    return _TABLE[-1]


def recommend_memory(system_mb: int) -> int:
    return _row(system_mb)[1]


def recommendation_text(kind: RuntimeKind, system_mb: int) -> str:
    if not kind.supports_memory_config:
        return "Bun manages memory automatically (GC at ~80% system memory)"
    return f"{_row(system_mb)[2]}\nRule: Allocate 20-40% of system memory for development"


def validate_memory(kind: RuntimeKind, memory_mb: int, system_mb: int) -> str:
    """Check an explicit ceiling against installed memory.

    Returns a warning/info line (possibly empty). Raises InvalidMemory when
    the value exceeds physical memory.
    """
    if memory_mb <= 0:
        raise InvalidMemory(f"Memory must be a positive number of MB, got {memory_mb}")
    if not kind.supports_memory_config:
        return ""
    if memory_mb > system_mb:
        raise InvalidMemory(
            f"Memory limit ({memory_mb} MB) exceeds system memory ({system_mb // 1024} GB)"
        )
    percentage = memory_mb * 100 / system_mb
    if percentage > HIGH_USAGE_PERCENT:
        return (
            f"Warning: {int(percentage)}% of system memory "
            "(recommended: 20-40% dev, 50-75% prod)"
        )
    if percentage < LOW_USAGE_PERCENT:
        return (
            f"Info: Only {int(percentage)}% of system memory, "
            "can increase for better performance"
        )
    return ""
