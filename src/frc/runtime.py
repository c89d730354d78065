"""JavaScript runtime descriptors.

Maps a command word to a runtime kind and describes how a memory ceiling is
handed to that runtime:

- Node: ``NODE_OPTIONS=--max-old-space-size=<mb>`` (merged into any
  ``NODE_OPTIONS`` the parent already exports)
- Deno: ``--v8-flags --max-old-space-size=<mb>`` on the argument vector
- Bun:  not supported (JavaScriptCore manages its own heap)
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from frc.errors import UnknownRuntime

NODE_OPTIONS = "NODE_OPTIONS"
ARG_SEPARATOR = "--"

# Both spellings are accepted by V8.
_HEAP_FLAG_RE = re.compile(r"(?<!\S)--max[-_]old[-_]space[-_]size(?:=\S*)?(?!\S)")


class RuntimeKind(str, Enum):
    NODE = "node"
    DENO = "deno"
    BUN = "bun"

    @classmethod
    def from_command(cls, command: str) -> RuntimeKind:
        """Resolve a command word (``npm``, ``deno``, ``NODE`` ...) to a runtime."""
        kind = _ALIASES.get(command.lower())
        if kind is None:
            raise UnknownRuntime(command)
        return kind

    @property
    def executable(self) -> str:
        return self.value

    @property
    def supports_memory_config(self) -> bool:
        return self is not RuntimeKind.BUN


_ALIASES: dict[str, RuntimeKind] = {
    "node": RuntimeKind.NODE,
    "npm": RuntimeKind.NODE,
    "npx": RuntimeKind.NODE,
    "pnpm": RuntimeKind.NODE,
    "yarn": RuntimeKind.NODE,
    "deno": RuntimeKind.DENO,
    "bun": RuntimeKind.BUN,
}


def heap_flag(memory_mb: int) -> str:
    return f"--max-old-space-size={memory_mb}"


@dataclass
class MemoryInjection:
    """How a child invocation must be modified to carry a memory ceiling.

    ``args`` is the complete argument vector (after the executable) and
    ``env_overrides`` the variables to set on top of the parent environment.
    ``supported`` is False when a ceiling was requested but the runtime has
    no way to take it; in that case nothing is modified.
    """

    kind: RuntimeKind
    memory_mb: int | None
    args: list[str]
    env_overrides: dict[str, str] = field(default_factory=dict)
    supported: bool = True

    @property
    def applied(self) -> bool:
        return self.supported and self.memory_mb is not None


def merge_node_options(existing: str | None, memory_mb: int) -> str:
    """Merge the heap flag into an existing ``NODE_OPTIONS`` value.

    Other options are kept in order; any previous heap-size flag is
    replaced so the new ceiling wins.
    """
    if not existing or not existing.strip():
        return heap_flag(memory_mb)
    kept = " ".join(_HEAP_FLAG_RE.sub("", existing).split())
    if not kept:
        return heap_flag(memory_mb)
    return f"{kept} {heap_flag(memory_mb)}"


def insert_before_separator(args: Sequence[str], extra: Sequence[str]) -> list[str]:
    """Append ``extra`` to ``args`` but ahead of the first ``--``."""
    result = list(args)
    try:
        idx = result.index(ARG_SEPARATOR)
    except ValueError:
        return result + list(extra)
    return result[:idx] + list(extra) + result[idx:]


def describe_injection(
    kind: RuntimeKind,
    memory_mb: int | None,
    args: Sequence[str],
    env: Mapping[str, str],
) -> MemoryInjection:
    """Describe the argument/environment changes for ``memory_mb`` on ``kind``.

    Never touches ``env`` itself; callers build the child environment from
    the parent environment plus ``env_overrides``.
    """
    if memory_mb is None:
        return MemoryInjection(kind=kind, memory_mb=None, args=list(args))

    if kind is RuntimeKind.NODE:
        return MemoryInjection(
            kind=kind,
            memory_mb=memory_mb,
            args=list(args),
            env_overrides={NODE_OPTIONS: merge_node_options(env.get(NODE_OPTIONS), memory_mb)},
        )

    if kind is RuntimeKind.DENO:
        return MemoryInjection(
            kind=kind,
            memory_mb=memory_mb,
            args=insert_before_separator(args, ["--v8-flags", heap_flag(memory_mb)]),
        )

    return MemoryInjection(kind=kind, memory_mb=memory_mb, args=list(args), supported=False)
