"""Filesystem helpers for the voice chat client."""

from __future__ import annotations

import os
from pathlib import Path

HOME_ENV = "VOICE_CHAT_HOME"


def app_home() -> Path:
    """Return the per-user data directory (``VOICE_CHAT_HOME`` overrides)."""
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".voice_chat"


def config_dir() -> Path:
    """Directory storing local configuration."""
    root = app_home() / "config"
    root.mkdir(parents=True, exist_ok=True)
    return root


def log_dir() -> Path:
    """Directory storing rotated log files."""
    return app_home() / "logs"


def models_dir() -> Path:
    """Directory storing speech models."""
    root = app_home() / "models"
    root.mkdir(parents=True, exist_ok=True)
    return root
