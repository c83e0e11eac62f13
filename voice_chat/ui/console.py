"""Terminal renderer and keyboard intents."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from typing import Callable, Optional, TextIO

import typer

from ..runtime.controller import ConversationOrchestrator
from ..services.schemas import Message, Sender
from ..state.app_state import ProcessingStatus

_COLORS = {
    Sender.USER: typer.colors.CYAN,
    Sender.ASSISTANT: typer.colors.GREEN,
    Sender.SYSTEM: typer.colors.YELLOW,
}
_LABELS = {
    Sender.USER: "you",
    Sender.ASSISTANT: "assistant",
    Sender.SYSTEM: "system",
}

HELP_TEXT = "Commands: /listen, /stop, /status, /help, /quit. Anything else is sent as a message."


class ConsoleRenderer:
    """Print transcript messages and status changes."""

    def __init__(self, echo: Callable[..., None] = typer.secho) -> None:
        self._echo = echo

    def render_message(self, message: Message) -> None:
        stamp = datetime.fromtimestamp(message.timestamp / 1000).strftime("%H:%M:%S")
        label = _LABELS[message.sender]
        self._echo(f"[{stamp}] {label}: {message.text}", fg=_COLORS[message.sender])

    def render_status(self, status: ProcessingStatus) -> None:
        self._echo(f"-- {status.label}", dim=True)


class ConsoleSession:
    """Read stdin lines and forward them to the orchestrator as intents."""

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        renderer: Optional[ConsoleRenderer] = None,
        *,
        stdin: TextIO | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.renderer = renderer or ConsoleRenderer()
        self._stdin = stdin or sys.stdin
        orchestrator.transcript.subscribe(self.renderer.render_message)
        orchestrator.subscribe_status(self.renderer.render_status)

    def dispatch(self, line: str) -> bool:
        """Apply one input line; returns False when the user asked to quit."""
        command = line.strip()
        if not command:
            return True
        lowered = command.lower()
        if lowered in ("/quit", "/exit"):
            return False
        if lowered == "/listen":
            if not self.orchestrator.start_capture() and self.orchestrator.is_processing:
                typer.secho("Busy, try again once the reply arrives.", dim=True)
        elif lowered == "/stop":
            self.orchestrator.stop_capture()
        elif lowered == "/status":
            self.renderer.render_status(self.orchestrator.status())
        elif lowered == "/help":
            typer.echo(HELP_TEXT)
        elif not self.orchestrator.submit_text(command):
            typer.secho("Still processing the previous message.", dim=True)
        return True

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        typer.echo(HELP_TEXT)
        while True:
            line = await loop.run_in_executor(None, self._stdin.readline)
            if line == "":
                # Piped input: let the last turn finish before exiting.
                await self.orchestrator.drain()
                return
            if not self.dispatch(line):
                return
