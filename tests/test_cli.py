from __future__ import annotations

import json

from typer.testing import CliRunner

from voice_chat import cli as cli_module
from voice_chat.config.settings import AppSettings
from voice_chat.config.store import save_settings, settings_path


runner = CliRunner()


def test_cli_help():
    result = runner.invoke(cli_module.cli, ["--help"])
    assert result.exit_code == 0
    assert "chat" in result.output and "config" in result.output


def test_chat_help_lists_switches():
    result = runner.invoke(cli_module.cli, ["chat", "--help"])
    assert result.exit_code == 0
    assert "--no-voice" in result.output and "--listen" in result.output


def test_config_show_masks_api_key():
    settings = AppSettings()
    settings.inference.api_key = "super-secret"
    save_settings(settings)
    result = runner.invoke(cli_module.cli, ["config", "show"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["inference"]["api_key"] == "***"
    assert "super-secret" not in result.output


def test_config_init_writes_once_then_requires_force(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    first = runner.invoke(cli_module.cli, ["config", "init"])
    assert first.exit_code == 0
    path = settings_path()
    assert path.exists()
    # environment overrides are not persisted
    assert json.loads(path.read_text(encoding="utf-8"))["inference"]["api_key"] is None

    second = runner.invoke(cli_module.cli, ["config", "init"])
    assert second.exit_code == 1

    forced = runner.invoke(cli_module.cli, ["config", "init", "--force"])
    assert forced.exit_code == 0
