"""Configuration loading from environment variables and frc.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "frc.toml"


def _config_home() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "frc"


@dataclass
class FrcConfig:
    """Top-level frc configuration."""

    store_path: Path
    log_level: str = "WARNING"
    stderr_tail_kb: int = 64
    cleanup_days: int = 30


def load_config(config_path: Path | None = None) -> FrcConfig:
    """Load configuration from environment variables and optional frc.toml.

    Priority: environment variables > frc.toml > defaults.
    """
    config_home = _config_home()
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and the per-user config dir
        for candidate in [Path.cwd() / _CONFIG_FILENAME, config_home / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    default_store = config_home / "config.json"
    store_path = os.getenv("FRC_STORE_PATH", file_data.get("store_path"))

    return FrcConfig(
        store_path=Path(store_path).expanduser() if store_path else default_store,
        log_level=os.getenv("FRC_LOG_LEVEL", file_data.get("log_level", "WARNING")),
        stderr_tail_kb=int(os.getenv("FRC_STDERR_TAIL_KB", file_data.get("stderr_tail_kb", 64))),
        cleanup_days=int(os.getenv("FRC_CLEANUP_DAYS", file_data.get("cleanup_days", 30))),
    )
