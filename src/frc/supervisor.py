"""Child process supervision with stderr capture and OOM classification.

The child inherits stdin/stdout. Stderr is piped through us: every chunk is
forwarded to our own stderr as it arrives and kept in a bounded tail buffer
which is scanned once for OOM signatures after the child exits.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from frc.errors import SpawnFailure
from frc.runtime import MemoryInjection, RuntimeKind, describe_injection

logger = logging.getLogger(__name__)

# Classifier: captured stderr bytes -> True if the child died of OOM
OomClassifier = Callable[[bytes], bool]
# Receives each stderr chunk as soon as it is read
StderrSink = Callable[[bytes], None]

OOM_SIGNATURES = (
    "JavaScript heap out of memory",
    "FATAL ERROR: Reached heap limit",
    "Allocation failed",
)

DEFAULT_TAIL_BYTES = 64 * 1024
_READ_CHUNK = 4096


def signature_classifier(stderr: bytes) -> bool:
    """Plain case-sensitive substring search for the known V8 OOM messages."""
    text = stderr.decode("utf-8", errors="replace")
    return any(sig in text for sig in OOM_SIGNATURES)


def write_to_stderr(chunk: bytes) -> None:
    stream = getattr(sys.stderr, "buffer", None)
    if stream is None:
        sys.stderr.write(chunk.decode("utf-8", errors="replace"))
        sys.stderr.flush()
        return
    sys.stderr.flush()
    stream.write(chunk)
    stream.flush()


class StderrTail:
    """Keeps only the last ``limit`` bytes written to it."""

    def __init__(self, limit: int = DEFAULT_TAIL_BYTES) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self._buf = bytearray()
        self.total = 0

    def feed(self, chunk: bytes) -> None:
        self.total += len(chunk)
        self._buf += chunk
        overflow = len(self._buf) - self.limit
        if overflow > 0:
            del self._buf[:overflow]

    @property
    def truncated(self) -> bool:
        return self.total > len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


@dataclass
class ExecutionOutcome:
    """Result of one supervised child run."""

    exit_code: int
    oom_detected: bool
    stderr_tail: bytes
    signal: int | None = None


def exit_status(returncode: int) -> tuple[int, int | None]:
    """Map a subprocess return code to (shell exit status, signal number)."""
    if returncode < 0:
        signum = -returncode
        return 128 + signum, signum
    return returncode, None


class ProcessSupervisor:
    """Runs exactly one child at a time and classifies how it ended."""

    def __init__(
        self,
        *,
        tail_bytes: int = DEFAULT_TAIL_BYTES,
        classifier: OomClassifier = signature_classifier,
        stderr_sink: StderrSink | None = write_to_stderr,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.tail_bytes = tail_bytes
        self.classifier = classifier
        self.stderr_sink = stderr_sink
        self.cwd = cwd
        self._env = env

    @property
    def parent_env(self) -> Mapping[str, str]:
        return os.environ if self._env is None else self._env

    def build_invocation(
        self,
        command: str,
        args: Sequence[str],
        runtime_kind: RuntimeKind,
        memory_mb: int | None,
    ) -> tuple[list[str], dict[str, str], MemoryInjection]:
        """Return (argv, child environment, injection) without spawning."""
        parent_env = self.parent_env
        injection = describe_injection(runtime_kind, memory_mb, args, parent_env)
        child_env = dict(parent_env)
        child_env.update(injection.env_overrides)
        return [command, *injection.args], child_env, injection

    def run(
        self,
        command: str,
        args: Sequence[str],
        runtime_kind: RuntimeKind,
        memory_mb: int | None = None,
    ) -> ExecutionOutcome:
        """Spawn the child and block until it exits."""
        return asyncio.run(self.run_async(command, args, runtime_kind, memory_mb))

    async def run_async(
        self,
        command: str,
        args: Sequence[str],
        runtime_kind: RuntimeKind,
        memory_mb: int | None = None,
    ) -> ExecutionOutcome:
        argv, child_env, injection = self.build_invocation(command, args, runtime_kind, memory_mb)
        if memory_mb is not None and not injection.supported:
            logger.info("%s takes no memory ceiling; running unmodified", runtime_kind.value)

        logger.debug("Starting: %s", " ".join(argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=None,
                stdout=None,
                stderr=asyncio.subprocess.PIPE,
                env=child_env,
                cwd=self.cwd,
            )
        except OSError as e:
            raise SpawnFailure(command, e.strerror or str(e)) from e

        logger.debug("Child started (pid=%d)", process.pid)
        tail = StderrTail(self.tail_bytes)
        await self._pump_stderr(process, tail)
        returncode = await process.wait()

        captured = tail.getvalue()
        oom = self.classifier(captured)
        code, signum = exit_status(returncode)
        logger.debug(
            "Child exited (pid=%d, status=%d, oom=%s, stderr=%d bytes%s)",
            process.pid,
            code,
            oom,
            tail.total,
            ", truncated" if tail.truncated else "",
        )
        return ExecutionOutcome(exit_code=code, oom_detected=oom, stderr_tail=captured, signal=signum)

    async def _pump_stderr(self, process: asyncio.subprocess.Process, tail: StderrTail) -> None:
        """Copy child stderr to the sink and the tail buffer until EOF."""
        if process.stderr is None:
            return
        while True:
            chunk = await process.stderr.read(_READ_CHUNK)
            if not chunk:
                return
            tail.feed(chunk)
            if self.stderr_sink is not None:
                self.stderr_sink(chunk)
