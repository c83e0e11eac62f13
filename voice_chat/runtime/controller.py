"""Turn-taking between capture, inference and narration."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..audio.narration import SilentNarrator, SpeechOutput
from ..errors import InferenceError, InferenceTimeout, MissingCredential
from ..services.schemas import InputSource, Message, Sender
from ..state.app_state import ProcessingStatus
from ..state.transcript import TranscriptStore
from ..trace import new_trace_id, turn_trace
from .capture import SpeechCaptureController

LOGGER = logging.getLogger(__name__)

StatusCallback = Callable[[ProcessingStatus], None]

TIMEOUT_MESSAGE = "Request timed out. Please try again."
NO_CREDENTIAL_MESSAGE = "API key not configured."


class Inference(Protocol):
    async def send(self, utterance: str) -> str: ...

    async def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class _Turn:
    text: str
    source: InputSource
    trace_id: str


class ConversationOrchestrator:
    """Serialize user utterances into one turn at a time.

    Typed submissions and final transcripts both enter through
    :meth:`handle_user_utterance`. Admission is decided synchronously on the
    ``is_processing`` flag; accepted turns are consumed by a single task
    reading from a queue, so at most one inference request is in flight.
    Capture is closed while a turn runs and reopened after the reply (or the
    error message) has been committed.
    """

    def __init__(
        self,
        inference: Inference,
        transcript: Optional[TranscriptStore] = None,
        *,
        speech_output: Optional[SpeechOutput] = None,
        capture: Optional[SpeechCaptureController] = None,
    ) -> None:
        self.inference = inference
        self.transcript = transcript or TranscriptStore()
        self.speech_output: SpeechOutput = speech_output or SilentNarrator()
        self.capture = capture
        self._queue: asyncio.Queue[Optional[_Turn]] = asyncio.Queue()
        self._consumer: Optional[asyncio.Task[None]] = None
        self._processing = False
        self._status_callbacks: list[StatusCallback] = []
        self._last_status = ProcessingStatus()

        self.transcript.subscribe(self._narrate)
        if capture is not None:
            capture.bind(
                on_utterance=lambda text: self.handle_user_utterance(text, source=InputSource.SPEECH),
                on_listening=lambda _listening: self._publish_status(),
                on_failure=self._capture_failed,
                is_busy=lambda: self._processing,
            )

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #
    @property
    def is_processing(self) -> bool:
        return self._processing

    def status(self) -> ProcessingStatus:
        listening = self.capture.is_listening if self.capture is not None else False
        return ProcessingStatus(is_listening=listening, is_processing=self._processing)

    def subscribe_status(self, callback: StatusCallback) -> None:
        self._status_callbacks.append(callback)

    # ------------------------------------------------------------------ #
    # User intents
    # ------------------------------------------------------------------ #
    def handle_user_utterance(self, text: str, source: InputSource = InputSource.TEXT) -> bool:
        """Admit an utterance as a new turn; no-op while a turn is in progress."""
        text = (text or "").strip()
        if not text or self._processing:
            return False
        self._processing = True
        with turn_trace(new_trace_id()) as trace_id:
            self.transcript.append(Message.user(text, source=source.value))
            if source is InputSource.TEXT and self.capture is not None:
                self.capture.suspend()
            self._publish_status()
            LOGGER.info("Turn accepted from %s.", source.value)
        self._queue.put_nowait(_Turn(text=text, source=source, trace_id=trace_id))
        return True

    def submit_text(self, text: str) -> bool:
        return self.handle_user_utterance(text, source=InputSource.TEXT)

    def start_capture(self) -> bool:
        if self.capture is None or self._processing:
            return False
        started = self.capture.start()
        self._publish_status()
        return started

    def stop_capture(self) -> None:
        if self.capture is None:
            return
        self.capture.stop()
        self._publish_status()

    # ------------------------------------------------------------------ #
    # Consumer loop
    # ------------------------------------------------------------------ #
    def start(self) -> asyncio.Task[None]:
        """Spawn the consumer task on the running loop (idempotent)."""
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self.run(), name="conversation-turns")
        return self._consumer

    async def run(self) -> None:
        while True:
            turn = await self._queue.get()
            try:
                if turn is None:
                    return
                await self._process_turn(turn)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every accepted turn has been committed."""
        await self._queue.join()

    async def close(self) -> None:
        if self.capture is not None:
            self.capture.close()
        consumer = self._consumer
        if consumer is not None and not consumer.done():
            self._queue.put_nowait(None)
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        self._consumer = None
        stop = getattr(self.speech_output, "stop", None)
        if callable(stop):
            stop()
        await self.inference.close()

    async def _process_turn(self, turn: _Turn) -> None:
        with turn_trace(turn.trace_id):
            try:
                reply = await self.inference.send(turn.text)
            except InferenceTimeout:
                self.transcript.append(Message.system(TIMEOUT_MESSAGE, error="timeout"))
            except MissingCredential:
                self.transcript.append(Message.system(NO_CREDENTIAL_MESSAGE, error="credential"))
            except InferenceError as exc:
                LOGGER.error("Inference failed: %s", exc)
                self.transcript.append(
                    Message.system(f"Error: {exc}. Please try again.", error=type(exc).__name__)
                )
            except Exception as exc:
                LOGGER.exception("Unexpected failure while processing a turn.")
                self.transcript.append(Message.system(f"Error: {exc}. Please try again.", error="internal"))
            else:
                self.transcript.append(Message.assistant(reply))
            finally:
                self._processing = False
                self._publish_status()
                LOGGER.info("Turn completed.")
            await self._resume_capture()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    async def _resume_capture(self) -> None:
        """Reopen suspended capture once the reply has been played out."""
        capture = self.capture
        if capture is None or not capture.is_suspended:
            return
        try:
            await self.speech_output.wait_idle()
        except Exception as exc:
            LOGGER.warning("Narration failed: %r", exc)
        # A turn accepted during narration owns the resume now.
        if self._processing or not capture.is_suspended:
            return
        capture.resume_after_turn()

    def _narrate(self, message: Message) -> None:
        if message.sender is not Sender.ASSISTANT:
            return
        try:
            self.speech_output.speak(message.text)
        except Exception as exc:  # narration never affects the conversation
            LOGGER.warning("Narration failed: %r", exc)

    def _capture_failed(self, text: str) -> None:
        self.transcript.append(Message.system(text, error="capture"))
        self._publish_status()

    def _publish_status(self) -> None:
        status = self.status()
        if status == self._last_status:
            return
        self._last_status = status
        for callback in list(self._status_callbacks):
            callback(status)
