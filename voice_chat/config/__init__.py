"""Configuration helpers."""

from .settings import AppSettings
from .store import load_settings, save_settings

__all__ = ["AppSettings", "load_settings", "save_settings"]
