"""Persisted logging settings.

Stored as a small JSON document (``{"log_level": "INFO"}``) at
``TABLERO_LOG_CONFIG`` or ``~/.tablero/logging.json`` so ``tablero logging
set-level`` survives restarts of the API server.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

PathLike = str | os.PathLike[str]


def config_path(config_file: PathLike | None = None) -> Path:
    if config_file is not None:
        return Path(config_file)
    override = (os.environ.get("TABLERO_LOG_CONFIG") or "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".tablero" / "logging.json"


def load_config(config_file: PathLike | None = None) -> dict[str, Any]:
    """Return the stored settings; a missing or corrupt file reads as ``{}``."""

    try:
        data = json.loads(config_path(config_file).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict[str, Any], config_file: PathLike | None = None) -> Path:
    path = config_path(config_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path


def level_number(level: str | int) -> int | None:
    """``"warning"``/``30`` -> ``30``; unknown names give ``None``."""

    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else None


def load_log_level(config_file: PathLike | None = None) -> int | None:
    stored = load_config(config_file).get("log_level")
    if stored is None:
        return None
    return level_number(stored)


def save_log_level(level: str | int, config_file: PathLike | None = None) -> Path:
    number = level_number(level)
    if number is None:
        raise ValueError(f"Unknown logging level: {level!r}")
    config = load_config(config_file)
    config["log_level"] = logging.getLevelName(number)
    return save_config(config, config_file)
