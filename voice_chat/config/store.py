"""Persistence helpers for voice chat settings."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

from .paths import config_dir
from .settings import (
    AppSettings,
    CaptureSettings,
    InferenceSettings,
    LoggingSettings,
    NarrationSettings,
    TranscriptSettings,
)

API_KEY_ENV = "GEMINI_API_KEY"


def settings_path() -> Path:
    """Path of the persisted settings file."""
    return config_dir() / "voice_settings.json"


def _known(cls: type, payload: dict[str, Any]) -> dict[str, Any]:
    """Drop keys the dataclass does not declare (older or newer files)."""
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in payload.items() if key in names}


def load_settings(path: Path | None = None, *, apply_env: bool = True) -> AppSettings:
    """Load settings from disk (defaults when missing), then apply env overrides."""
    path = path or settings_path()
    data: dict[str, Any] = {}
    if path.exists():
        raw_text = path.read_text(encoding="utf-8").lstrip("\ufeff")
        data = json.loads(raw_text) if raw_text.strip() else {}

    settings = AppSettings(
        inference=InferenceSettings(**_known(InferenceSettings, data.get("inference", {}))),
        capture=CaptureSettings(**_known(CaptureSettings, data.get("capture", {}))),
        narration=NarrationSettings(**_known(NarrationSettings, data.get("narration", {}))),
        transcript=TranscriptSettings(**_known(TranscriptSettings, data.get("transcript", {}))),
        logging=LoggingSettings(**_known(LoggingSettings, data.get("logging", {}))),
    )
    env_key = os.environ.get(API_KEY_ENV, "").strip() if apply_env else ""
    if env_key:
        settings.inference.api_key = env_key
    return settings


def save_settings(settings: AppSettings, path: Path | None = None) -> Path:
    """Persist settings to disk and return the written path."""
    path = path or settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
    return path
