"""Continuous speech recognition on the local microphone."""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import sounddevice as sd

from ..config.settings import CaptureSettings
from ..errors import AUDIO_CAPTURE, NO_SPEECH, CaptureStartError, CaptureUnavailable
from ..services.schemas import RecognitionEvent, RecognitionResult
from .capture import MicConfig, MicrophoneCapture, available_input_devices
from .device import DeviceFactory, RecognitionListener
from .segmenter import SegmentKind, SegmenterConfig, SpeechDetector, SpeechSegmenter
from .transcriber import FasterWhisperEngine, WhisperConfig, language_for_locale

LOGGER = logging.getLogger(__name__)

_FRAME_QUEUE_SIZE = 256
_POLL_S = 0.1


class Transcriber(Protocol):
    def transcribe(self, pcm16: bytes) -> str: ...


@dataclass(slots=True)
class RecognizerConfig:
    locale: str = "en-US"
    no_speech_timeout_s: float = 8.0
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)


class WhisperRecognizer:
    """Recognition device: microphone -> VAD segmenter -> faster-whisper.

    Each ``open`` starts one session on a worker thread. Callbacks are
    marshalled onto ``loop``. A session ends by itself after
    ``no_speech_timeout_s`` without voice (``no-speech`` error, then end),
    mimicking the platform timeouts the controller recovers from.
    """

    def __init__(
        self,
        engine: Transcriber,
        *,
        loop: asyncio.AbstractEventLoop,
        config: RecognizerConfig | None = None,
        microphone: MicrophoneCapture | None = None,
        detector: SpeechDetector | None = None,
    ) -> None:
        self.engine = engine
        self.detector = detector
        self.loop = loop
        self.config = config or RecognizerConfig()
        self.locale = self.config.locale
        self.microphone = microphone or MicrophoneCapture(
            MicConfig(sample_rate=self.config.segmenter.sample_rate, frame_duration_ms=self.config.segmenter.frame_ms)
        )
        self._frames: queue.Queue[Optional[bytes]] = queue.Queue(maxsize=_FRAME_QUEUE_SIZE)
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None
        self._active = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # RecognitionDevice
    # ------------------------------------------------------------------ #
    def open(self, listener: RecognitionListener) -> None:
        with self._lock:
            if self._active:
                raise CaptureStartError("Recognition session already running.")
            self._stop.clear()
            self._frames = queue.Queue(maxsize=_FRAME_QUEUE_SIZE)
            try:
                self.microphone.start(self._enqueue_frame)
            except (sd.PortAudioError, ValueError) as exc:
                raise CaptureStartError(f"Microphone unavailable: {exc}") from exc
            self._worker = threading.Thread(
                target=self._run_session,
                args=(listener, self._frames),
                name="speech-recognizer",
                daemon=True,
            )
            self._active = True
            self._worker.start()
        self._post(listener.on_start)

    def stop(self) -> None:
        self._stop.set()
        self.microphone.stop()
        try:
            self._frames.put_nowait(None)
        except queue.Full:
            pass

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _enqueue_frame(self, frame: bytes) -> None:
        """Runs on the sounddevice thread; drops the oldest frame when full."""
        try:
            self._frames.put_nowait(frame)
        except queue.Full:
            try:
                self._frames.get_nowait()
                self._frames.put_nowait(frame)
            except (queue.Empty, queue.Full):
                pass

    def _run_session(self, listener: RecognitionListener, frames: "queue.Queue[Optional[bytes]]") -> None:
        segmenter = SpeechSegmenter(self.config.segmenter, self.detector)
        finals: list[RecognitionResult] = []
        timeout_ms = int(self.config.no_speech_timeout_s * 1000)
        try:
            while not self._stop.is_set():
                try:
                    frame = frames.get(timeout=_POLL_S)
                except queue.Empty:
                    continue
                if frame is None:
                    break
                segment = segmenter.add_frame(frame)
                if segment is not None:
                    text = self.engine.transcribe(segment.pcm)
                    if self._stop.is_set():
                        break
                    if segment.kind is SegmentKind.FINAL:
                        if text:
                            finals.append(RecognitionResult(text=text, final=True))
                            self._post(listener.on_result, RecognitionEvent(tuple(finals), len(finals) - 1))
                    elif text:
                        interim = RecognitionResult(text=text, final=False)
                        self._post(listener.on_result, RecognitionEvent((*finals, interim), len(finals)))
                if not segmenter.speaking and segmenter.idle_ms >= timeout_ms:
                    self._post(listener.on_error, NO_SPEECH)
                    break
        except Exception:
            LOGGER.exception("Recognition session failed.")
            self._post(listener.on_error, AUDIO_CAPTURE)
        finally:
            self.microphone.stop()
            with self._lock:
                self._active = False
            self._post(listener.on_end)

    def _post(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            self.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:  # pragma: no cover - loop closed during shutdown
            LOGGER.debug("Event loop closed, dropping %s", getattr(callback, "__name__", callback))


def build_recognizer_factory(settings: CaptureSettings, loop: asyncio.AbstractEventLoop) -> DeviceFactory:
    """Return a factory creating the device lazily; raises CaptureUnavailable."""
    engine: list[FasterWhisperEngine] = []

    def _factory() -> WhisperRecognizer:
        if not settings.enabled:
            raise CaptureUnavailable("Speech capture is disabled in settings.")
        try:
            devices = available_input_devices()
        except sd.PortAudioError as exc:
            raise CaptureUnavailable(f"Audio subsystem unavailable: {exc}") from exc
        if not devices:
            raise CaptureUnavailable("No microphone found.")
        if not engine:
            try:
                engine.append(
                    FasterWhisperEngine(
                        WhisperConfig(
                            model=settings.whisper_model,
                            device=settings.whisper_device,
                            compute_type=settings.whisper_compute_type,
                            language=language_for_locale(settings.locale),
                        )
                    )
                )
            except (RuntimeError, OSError, ValueError) as exc:
                raise CaptureUnavailable(f"Speech model could not be loaded: {exc}") from exc
        segmenter = SegmenterConfig(
            aggressiveness=settings.vad_aggressiveness,
            silence_ms=settings.silence_ms,
            interim_interval_ms=settings.interim_interval_ms,
        )
        return WhisperRecognizer(
            engine[0],
            loop=loop,
            config=RecognizerConfig(
                locale=settings.locale,
                no_speech_timeout_s=settings.no_speech_timeout_s,
                segmenter=segmenter,
            ),
            microphone=MicrophoneCapture(MicConfig(device_name=settings.input_device)),
        )

    return _factory
