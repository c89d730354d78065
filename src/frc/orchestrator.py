"""frc orchestrator — one supervised run per invocation.

Flow for a run:
1. Resolve the project id for the working directory
2. Decide the memory ceiling (explicit -m > saved config > none)
3. Execute the child under the ProcessSupervisor
4. On an OOM classification with a known ceiling, persist the next ceiling
   from the recovery policy and tell the user to re-run
5. Return the child's own exit status

The run is never retried in-process: the failing command's exit status is
what the caller gets.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import TextIO

from frc.errors import SPAWN_FAILURE_EXIT_CODE, ConfigWriteFailure, SpawnFailure
from frc.project import project_name, resolve_project_id
from frc.recommend import (
    recommend_memory,
    recommendation_text,
    system_memory_mb,
    validate_memory,
)
from frc.recovery import next_memory
from frc.runtime import RuntimeKind
from frc.store import Clock, ConfigStore, ProjectConfig
from frc.supervisor import ExecutionOutcome, ProcessSupervisor

logger = logging.getLogger(__name__)

ProjectResolver = Callable[[Path | None], str]


def format_timestamp(ts: int) -> str:
    try:
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "unknown"


class Orchestrator:
    """Composes project resolution, the config store and the supervisor."""

    def __init__(
        self,
        store: ConfigStore,
        supervisor: ProcessSupervisor | None = None,
        *,
        resolve_project: ProjectResolver | None = None,
        system_memory: Callable[[], int] | None = None,
        clock: Clock = time.time,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.store = store
        self.supervisor = supervisor or ProcessSupervisor()
        self._resolve_project = resolve_project or resolve_project_id
        self._system_memory = system_memory or system_memory_mb
        self._clock = clock
        self._out = out
        self._err = err

    # ── Output helpers ───────────────────────────────────────

    def _say(self, text: str = "") -> None:
        print(text, file=self._out or sys.stdout)

    def _notice(self, text: str = "") -> None:
        # Notices around a child run go to stderr so the child's stdout stays clean.
        print(text, file=self._err or sys.stderr, flush=True)

    def _persist(self, config: ProjectConfig) -> bool:
        try:
            self.store.put(config)
        except ConfigWriteFailure as e:
            logger.error("%s", e)
            self._notice(f"Could not save config: {e}")
            return False
        return True

    # ── Running a command ────────────────────────────────────

    def determine_memory(
        self,
        kind: RuntimeKind,
        project_id: str,
        explicit_memory: int | None,
    ) -> int | None:
        """Pick the ceiling for this run, persisting explicit values."""
        now = self._clock()
        name = project_name(project_id)

        if explicit_memory is not None:
            warning = validate_memory(kind, explicit_memory, self._system_memory())
            if warning:
                self._notice(warning)
            config = ProjectConfig(project_id, kind, explicit_memory, int(now))
            if self._persist(config):
                self._notice(f"Saved config for '{name}': {kind.value} {explicit_memory} MB")
            return explicit_memory

        saved = self.store.get(project_id)
        if saved is not None and saved.runtime is kind:
            self._notice(f"Using saved config for '{name}': {saved.memory_mb} MB")
            self._persist(saved.touched(now))
            return saved.memory_mb

        if saved is not None:
            logger.info(
                "Saved config for %s is for %s, not %s; ignoring",
                project_id,
                saved.runtime.value,
                kind.value,
            )
        elif kind.supports_memory_config:
            recommended = recommend_memory(self._system_memory())
            self._notice(f"No saved config. Recommended: {recommended} MB")
            self._notice(f"  Run with -m {recommended} to use and save this value")
        return None

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        memory: int | None = None,
        runtime: str | None = None,
        cwd: Path | None = None,
    ) -> int:
        """Run ``command args`` under supervision; returns the exit status.

        With ``runtime`` given, ``command`` becomes the first argument of that
        runtime's executable (``frc -r node my-script`` runs ``node my-script``).
        """
        if runtime is not None:
            kind = RuntimeKind.from_command(runtime)
            executable, child_args = kind.executable, [command, *args]
        else:
            kind = RuntimeKind.from_command(command)
            executable, child_args = command, list(args)

        project_id = self._resolve_project(cwd)
        ceiling = self.determine_memory(kind, project_id, memory)

        if ceiling is not None and not kind.supports_memory_config:
            self._notice(f"WARNING: {kind.value} does not support manual memory configuration!")
            self._notice("  Bun uses JavaScriptCore and manages memory automatically.")
            self._notice("  Memory flag will be ignored.")
        elif ceiling is not None:
            self._notice(f"Setting memory limit to {ceiling} MB for {kind.value}")

        try:
            outcome = self.supervisor.run(executable, child_args, kind, ceiling)
        except SpawnFailure as e:
            logger.error("%s", e)
            self._notice(f"Error: {e}")
            return SPAWN_FAILURE_EXIT_CODE

        if outcome.oom_detected:
            self.recover(kind, project_id, ceiling, outcome)
        return outcome.exit_code

    def recover(
        self,
        kind: RuntimeKind,
        project_id: str,
        previous: int | None,
        outcome: ExecutionOutcome,
    ) -> int | None:
        """Apply the recovery policy after an OOM; returns the new ceiling."""
        name = project_name(project_id)
        self._notice()
        self._notice("Out of Memory Detected!")

        if previous is None or not kind.supports_memory_config:
            recommended = recommend_memory(self._system_memory())
            self._notice("No memory limit was configured for this run.")
            self._notice(f"  Re-run with -m <MB> to set one (recommended: {recommended} MB)")
            return None

        new = next_memory(previous)
        logger.info("OOM in %s (exit=%d): %d -> %d MB", project_id, outcome.exit_code, previous, new)
        if not self._persist(ProjectConfig(project_id, kind, new, int(self._clock()))):
            return None
        self._notice(f"Auto-increased: {previous} MB -> {new} MB")
        self._notice(f"Saved for project '{name}'")
        self._notice(f"Run the same command again to use {new} MB")
        return new

    # ── Informational subcommands ────────────────────────────

    def show_recommendations(self, kind: RuntimeKind) -> int:
        system_mb = self._system_memory()
        self._say(f"System: {system_mb // 1024} GB")
        self._say(f"Recommendations for {kind.value}:")
        for line in recommendation_text(kind, system_mb).splitlines():
            self._say(f"  {line}")
        if kind.supports_memory_config:
            self._say("Example:")
            self._say(f"  frc -m {recommend_memory(system_mb)} {kind.value} script.js")
        return 0

    def show_project(self, cwd: Path | None = None) -> int:
        project_id = self._resolve_project(cwd)
        self._say(f"Project: {project_name(project_id)}")
        self._say(f"  Path: {project_id}")

        config = self.store.get(project_id)
        if config is None:
            self._say("No saved configuration")
            self._say("  Run with -m <memory> to save a config")
            return 0

        self._say("Saved configuration:")
        self._say(f"  Runtime: {config.runtime.value}")
        self._say(f"  Memory: {config.memory_mb} MB")
        self._say(f"  Last used: {format_timestamp(config.last_used)}")
        return 0

    def list_projects(self) -> int:
        configs = self.store.list()
        if not configs:
            self._say("No saved project configurations")
            return 0

        self._say("Saved project configurations:")
        for config in configs:
            self._say()
            self._say(f"  {project_name(config.project_id)}")
            self._say(f"    Path: {config.project_id}")
            self._say(
                f"    Runtime: {config.runtime.value} | Memory: {config.memory_mb} MB"
                f" | Last used: {format_timestamp(config.last_used)}"
            )
        return 0

    def forget(self, path: str | None = None, cwd: Path | None = None) -> int:
        if path:
            project_id = str(Path(path).expanduser().resolve())
        else:
            project_id = self._resolve_project(cwd)
        name = project_name(project_id)

        try:
            removed = self.store.delete(project_id)
        except ConfigWriteFailure as e:
            self._notice(f"Could not save config: {e}")
            return 1

        if removed:
            self._say(f"Removed config for '{name}'")
        else:
            self._say(f"No config found for '{name}'")
        return 0

    def cleanup(self, days: int) -> int:
        try:
            removed = self.store.prune(timedelta(days=days))
        except ConfigWriteFailure as e:
            self._notice(f"Could not save config: {e}")
            return 1
        self._say(f"Cleaned up {removed} config(s) older than {days} days")
        return 0
