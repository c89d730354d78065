"""Memory backoff applied after an out-of-memory termination."""

from __future__ import annotations

GROWTH_FACTOR = 1.5
MIN_STEP_MB = 2048


def next_memory(previous: int) -> int:
    """Return the ceiling to persist after an OOM at ``previous`` MB.

    ``max(previous * 1.5, previous + 2048)`` rounded to whole megabytes.
    There is no upper clamp.
    """
    if previous <= 0:
        raise ValueError(f"memory must be positive, got {previous}")
    grown = int(round(previous * GROWTH_FACTOR))
    return max(grown, previous + MIN_STEP_MB)
