"""Per-platform config, data and model directories."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def get_config_dir() -> Path:
    env = os.environ.get("FOCUSFLOW_CONFIG_DIR")
    if env:
        return Path(env)

    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "focusflow"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "focusflow"
    # Linux / XDG
    xdg = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    return Path(xdg) / "focusflow"


def get_data_dir() -> Path:
    env = os.environ.get("FOCUSFLOW_DATA_DIR")
    if env:
        return Path(env)

    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "focusflow"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "focusflow"
    xdg = os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
    return Path(xdg) / "focusflow"


def get_models_dir() -> Path:
    """Directory holding downloaded GGUF weights."""
    env = os.environ.get("FOCUSFLOW_MODELS_DIR")
    if env:
        return Path(env)
    return get_data_dir() / "models"

