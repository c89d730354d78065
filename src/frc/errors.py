"""Error taxonomy for frc.

OOM is deliberately absent: an out-of-memory child is a classified outcome
(see ``ExecutionOutcome.oom_detected``), not a failure of the tool.
"""

from __future__ import annotations

# Exit status used when the child could not be started at all. Matches the
# shell's "command not found"; a child can exit 127 on its own too.
SPAWN_FAILURE_EXIT_CODE = 127

# Exit status for bad command-line input (argparse uses the same value).
USAGE_EXIT_CODE = 2


class FrcError(Exception):
    """Base class for all errors raised by frc."""


class SpawnFailure(FrcError):
    """The child command is missing or not executable."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"Failed to start '{command}': {reason}")
        self.command = command
        self.reason = reason


class UnknownRuntime(FrcError):
    """The command does not map to any known runtime."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown runtime: {name}")
        self.name = name


class InvalidMemory(FrcError):
    """The requested memory value is not usable."""


class ConfigReadCorrupt(FrcError):
    """The persisted store exists but cannot be parsed."""


class ConfigWriteFailure(FrcError):
    """The persisted store could not be written."""
