"""Per-project memory settings, persisted as a single JSON document.

Every mutation reads the whole document, changes it in memory and rewrites
it in one piece. Separate frc processes are not coordinated; the last
writer wins.

Document shape::

    {"projects": {"/abs/project/root": {"runtime": "node",
                                        "memory_mb": 4096,
                                        "last_used": 1760000000}}}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Protocol, runtime_checkable

from frc.errors import ConfigReadCorrupt, ConfigWriteFailure, UnknownRuntime
from frc.runtime import RuntimeKind

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class ProjectConfig:
    """Saved memory setting for one project."""

    project_id: str
    runtime: RuntimeKind
    memory_mb: int
    last_used: int

    def __post_init__(self) -> None:
        if self.memory_mb <= 0:
            raise ValueError(f"memory_mb must be positive, got {self.memory_mb}")

    def touched(self, now: float) -> ProjectConfig:
        return replace(self, last_used=int(now))

    def to_dict(self) -> dict:
        return {
            "runtime": self.runtime.value,
            "memory_mb": self.memory_mb,
            "last_used": self.last_used,
        }

    @classmethod
    def from_dict(cls, project_id: str, data: dict) -> ProjectConfig:
        """Build from a stored entry. Unknown keys are ignored.

        Older documents stored memory as a string under ``memory``.
        """
        raw_memory = data.get("memory_mb", data.get("memory"))
        if raw_memory is None:
            raise ValueError("missing memory_mb")
        return cls(
            project_id=project_id,
            runtime=RuntimeKind.from_command(str(data.get("runtime", ""))),
            memory_mb=int(raw_memory),
            last_used=int(data.get("last_used", 0)),
        )


@runtime_checkable
class ConfigStore(Protocol):
    """Project-keyed persistence used by the orchestrator."""

    def get(self, project_id: str) -> ProjectConfig | None: ...

    def put(self, config: ProjectConfig) -> None: ...

    def delete(self, project_id: str) -> bool: ...

    def list(self) -> list[ProjectConfig]: ...

    def prune(self, older_than: timedelta) -> int: ...


def _sorted_newest_first(configs) -> list[ProjectConfig]:
    return sorted(configs, key=lambda c: c.last_used, reverse=True)


class InMemoryConfigStore:
    """Dict-backed store; nothing survives the process."""

    def __init__(self, configs: list[ProjectConfig] | None = None, clock: Clock = time.time) -> None:
        self._clock = clock
        self._data: dict[str, ProjectConfig] = {c.project_id: c for c in configs or []}

    def get(self, project_id: str) -> ProjectConfig | None:
        return self._data.get(project_id)

    def put(self, config: ProjectConfig) -> None:
        self._data[config.project_id] = config

    def delete(self, project_id: str) -> bool:
        return self._data.pop(project_id, None) is not None

    def list(self) -> list[ProjectConfig]:
        return _sorted_newest_first(self._data.values())

    def prune(self, older_than: timedelta) -> int:
        cutoff = self._clock() - older_than.total_seconds()
        stale = [pid for pid, c in self._data.items() if c.last_used < cutoff]
        for pid in stale:
            del self._data[pid]
        return len(stale)


class JsonConfigStore:
    """File-backed store at a fixed per-user path."""

    def __init__(self, path: Path, clock: Clock = time.time) -> None:
        self.path = path
        self._clock = clock

    # ── Reading ──────────────────────────────────────────────

    def _read_document(self) -> dict:
        """Parse the backing file. Raises ConfigReadCorrupt if unusable."""
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigReadCorrupt(f"Cannot read {self.path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigReadCorrupt(f"Malformed JSON in {self.path}: {e}") from e
        if not isinstance(doc, dict):
            raise ConfigReadCorrupt(f"Unexpected document type in {self.path}: {type(doc).__name__}")
        return doc

    def _load(self) -> dict[str, ProjectConfig]:
        try:
            doc = self._read_document()
        except ConfigReadCorrupt as e:
            logger.warning("%s; treating saved configs as empty", e)
            return {}

        projects = doc.get("projects", {})
        if not isinstance(projects, dict):
            logger.warning("Ignoring malformed 'projects' section in %s", self.path)
            return {}

        result: dict[str, ProjectConfig] = {}
        for project_id, entry in projects.items():
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed entry for %s", project_id)
                continue
            try:
                result[project_id] = ProjectConfig.from_dict(project_id, entry)
            except (ValueError, TypeError, OverflowError, UnknownRuntime) as e:
                logger.warning("Skipping unreadable entry for %s: %s", project_id, e)
        return result

    # ── Writing ──────────────────────────────────────────────

    def _save(self, data: dict[str, ProjectConfig]) -> None:
        doc = {"projects": {pid: c.to_dict() for pid, c in data.items()}}
        content = json.dumps(doc, indent=2, sort_keys=True) + "\n"
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(content)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ConfigWriteFailure(f"Cannot write {self.path}: {e}") from e
        logger.debug("Wrote %d project config(s) to %s", len(data), self.path)

    # ── Store operations ─────────────────────────────────────

    def get(self, project_id: str) -> ProjectConfig | None:
        return self._load().get(project_id)

    def put(self, config: ProjectConfig) -> None:
        data = self._load()
        data[config.project_id] = config
        self._save(data)

    def delete(self, project_id: str) -> bool:
        data = self._load()
        if data.pop(project_id, None) is None:
            return False
        self._save(data)
        return True

    def list(self) -> list[ProjectConfig]:
        return _sorted_newest_first(self._load().values())

    def prune(self, older_than: timedelta) -> int:
        data = self._load()
        cutoff = self._clock() - older_than.total_seconds()
        kept = {pid: c for pid, c in data.items() if c.last_used >= cutoff}
        removed = len(data) - len(kept)
        self._save(kept)
        return removed
