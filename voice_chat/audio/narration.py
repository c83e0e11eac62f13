"""Narration of assistant replies."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Optional, Protocol

from ..config.paths import models_dir
from ..config.settings import NarrationSettings
from ..services.schemas import NarrationRequest

if TYPE_CHECKING:
    from .playback import SpeechPlayback
    from .tts import PiperTTS

LOGGER = logging.getLogger(__name__)


class SpeechOutput(Protocol):
    """Best-effort narration: fire-and-forget, never raises."""

    def speak(self, text: str) -> None: ...

    async def wait_idle(self) -> None:
        """Return once every reply passed to ``speak`` has been played."""
        ...


class SilentNarrator:
    """Used when no synthesis capability is available."""

    def speak(self, text: str) -> None:
        return None

    async def wait_idle(self) -> None:
        return None

    def stop(self) -> None:
        return None


class PiperNarrator:
    """Synthesize with Piper off the event loop and queue the audio for playback.

    Synthesis runs on one worker thread so consecutive replies are played in
    the order they were spoken.
    """

    def __init__(
        self,
        tts: PiperTTS,
        playback: SpeechPlayback,
        *,
        locale: str = "en-US",
        rate: float = 1.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.tts = tts
        self.playback = playback
        self.locale = locale
        self.rate = rate
        self._loop = loop
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="narration")
        self._pending: set[asyncio.Future[None]] = set()

    def speak(self, text: str) -> None:
        request = NarrationRequest(text=text.strip(), locale=self.locale, rate=self.rate)
        if not request.text:
            return
        loop = self._loop or asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._narrate, request)
        self._pending.add(future)
        future.add_done_callback(self._finished)

    async def wait_idle(self) -> None:
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.playback.wait_idle)

    def stop(self) -> None:
        """Drop queued audio and release the output stream."""
        self.playback.close()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _narrate(self, request: NarrationRequest) -> None:
        for pcm, sample_rate, channels in self.tts.synthesize_stream(request.text):
            self.playback.play(pcm, sample_rate, channels)

    def _finished(self, future: asyncio.Future[None]) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.warning("Narration failed: %r", exc)


def build_speech_output(settings: NarrationSettings) -> SpeechOutput:
    """Return a Piper narrator, or a silent one when the voice cannot be loaded."""
    if not settings.enabled:
        return SilentNarrator()
    try:
        from .playback import PlaybackConfig, SpeechPlayback
        from .tts import PiperTTS
    except OSError as exc:  # PortAudio or ONNX runtime missing on the host
        LOGGER.info("Narration disabled: %s", exc)
        return SilentNarrator()

    rate = max(0.25, min(4.0, settings.rate))
    try:
        tts = PiperTTS.from_directory(models_dir() / "tts" / settings.voice, length_scale=1.0 / rate)
    except FileNotFoundError as exc:
        LOGGER.info("Narration disabled: %s", exc)
        return SilentNarrator()
    playback = SpeechPlayback(PlaybackConfig(device_name=settings.output_device))
    return PiperNarrator(tts, playback, locale=settings.locale, rate=rate)
