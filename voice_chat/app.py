"""Entry point wiring the terminal chat together."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .audio.device import DeviceFactory, RecognitionDevice
from .audio.narration import SilentNarrator, build_speech_output
from .config.settings import AppSettings, CaptureSettings
from .config.store import load_settings
from .errors import CaptureUnavailable
from .logging_setup import configure_logging
from .runtime.capture import SpeechCaptureController
from .runtime.controller import ConversationOrchestrator
from .services.api import InferenceClient
from .state.transcript import TranscriptStore
from .ui.console import ConsoleSession

LOGGER = logging.getLogger(__name__)


def _device_factory(settings: CaptureSettings, loop: asyncio.AbstractEventLoop) -> DeviceFactory:
    try:
        from .audio.recognizer import build_recognizer_factory
    except OSError as exc:  # PortAudio missing on the host
        reason = str(exc)

        def _unavailable() -> RecognitionDevice:
            raise CaptureUnavailable(reason)

        return _unavailable
    return build_recognizer_factory(settings, loop)


def build_orchestrator(
    settings: AppSettings,
    loop: asyncio.AbstractEventLoop,
    *,
    voice: bool = True,
    narrate: bool = True,
) -> ConversationOrchestrator:
    """Assemble the orchestrator and its collaborators from settings."""
    capture = None
    if voice:
        capture = SpeechCaptureController(
            _device_factory(settings.capture, loop),
            loop=loop,
            restart_delay=settings.capture.restart_delay_s,
        )
    speech_output = build_speech_output(settings.narration) if narrate else SilentNarrator()
    return ConversationOrchestrator(
        InferenceClient(settings.inference),
        TranscriptStore(max_turns=settings.transcript.max_turns),
        speech_output=speech_output,
        capture=capture,
    )


async def run_chat(settings: AppSettings, *, voice: bool = True, narrate: bool = True, listen: bool = False) -> None:
    loop = asyncio.get_running_loop()
    orchestrator = build_orchestrator(settings, loop, voice=voice, narrate=narrate)
    session = ConsoleSession(orchestrator)
    orchestrator.start()
    if listen:
        orchestrator.start_capture()
    try:
        await session.run()
    finally:
        await orchestrator.close()
        LOGGER.info("Chat session closed.")


def run(
    settings: Optional[AppSettings] = None,
    *,
    voice: bool = True,
    narrate: bool = True,
    listen: bool = False,
) -> None:
    """Start the terminal chat."""
    settings = settings or load_settings()
    configure_logging(settings.logging)
    asyncio.run(run_chat(settings, voice=voice, narrate=narrate, listen=listen))
