from __future__ import annotations

import json
from dataclasses import asdict

import typer

from .config.store import load_settings, save_settings, settings_path

cli = typer.Typer(name="voice-chat", help="Voice and text chat with a remote model")
config_cli = typer.Typer(help="Configuration")
cli.add_typer(config_cli, name="config")


@cli.command()
def chat(
    voice: bool = typer.Option(True, "--voice/--no-voice", help="Enable speech capture"),
    narrate: bool = typer.Option(True, "--narrate/--no-narrate", help="Read replies aloud"),
    listen: bool = typer.Option(False, "--listen", help="Start listening immediately"),
) -> None:
    """Start an interactive chat session."""
    from .app import run

    run(load_settings(), voice=voice, narrate=narrate, listen=listen)


@cli.command()
def devices() -> None:
    """List microphones usable for speech capture."""
    from .audio.capture import available_input_devices

    names = available_input_devices()
    if not names:
        typer.echo("No input device found.")
        return
    for name in names:
        typer.echo(name)


@config_cli.command("show")
def config_show() -> None:
    """Print the effective settings (API key masked)."""
    payload = asdict(load_settings())
    if payload["inference"].get("api_key"):
        payload["inference"]["api_key"] = "***"
    typer.echo(json.dumps(payload, indent=2))


@config_cli.command("init")
def config_init(force: bool = typer.Option(False, "--force", help="Overwrite an existing file")) -> None:
    """Write a settings file with the current values."""
    path = settings_path()
    if path.exists() and not force:
        typer.echo(f"{path} already exists (use --force to overwrite).")
        raise typer.Exit(code=1)
    settings = load_settings(apply_env=False)
    typer.echo(str(save_settings(settings)))
