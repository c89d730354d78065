"""Project identification by walking up to the nearest marker file."""

from __future__ import annotations

from pathlib import Path

MARKERS = (
    "package.json",
    "deno.json",
    "deno.jsonc",
    "Cargo.toml",
    ".git",
    "pnpm-workspace.yaml",
    "lerna.json",
    "nx.json",
)


def find_project_root(working_dir: Path | None = None) -> Path:
    """Nearest ancestor of ``working_dir`` holding a marker, else ``working_dir``."""
    start = (working_dir or Path.cwd()).resolve()
    for d in [start, *start.parents]:
        if any((d / marker).exists() for marker in MARKERS):
            return d
    return start


def resolve_project_id(working_dir: Path | None = None) -> str:
    return str(find_project_root(working_dir))


def project_name(project_id: str) -> str:
    return Path(project_id).name or "unknown"
