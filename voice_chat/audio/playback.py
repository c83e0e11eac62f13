"""Sequential PCM playback on the output device."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass

import sounddevice as sd

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PlaybackConfig:
    """Playback configuration."""

    device_name: str | None = None


class SpeechPlayback:
    """Play queued PCM chunks one after another on a writer thread.

    ``wait_idle`` blocks until every queued chunk has been written (or
    dropped by ``stop``), which lets callers keep the microphone closed
    while a reply is being played.
    """

    def __init__(self, config: PlaybackConfig | None = None) -> None:
        self.config = config or PlaybackConfig()
        self._queue: queue.Queue[tuple[bytes, int, int] | None] = queue.Queue()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._generation = 0
        self._pending = 0
        self._idle = threading.Event()
        self._idle.set()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def play(self, pcm_data: bytes, sample_rate: int, channels: int = 1) -> None:
        """Queue a PCM int16 buffer for playback."""
        if not pcm_data:
            return
        with self._lock:
            self._ensure_thread()
            self._pending += 1
            self._idle.clear()
            self._queue.put((pcm_data, sample_rate, channels))

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is queued or playing; False on timeout."""
        return self._idle.wait(timeout)

    @property
    def idle(self) -> bool:
        return self._idle.is_set()

    def stop(self) -> None:
        """Drop everything still queued."""
        with self._lock:
            self._generation += 1
        self._drop_queued()

    def close(self) -> None:
        self.stop()
        thread = self._thread
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            thread.join(timeout=1)
        self._thread = None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _ensure_thread(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._writer, name="speech-playback", daemon=True)
        self._thread.start()

    def _done(self, count: int = 1) -> None:
        if count <= 0:
            return
        with self._lock:
            self._pending = max(0, self._pending - count)
            if self._pending == 0:
                self._idle.set()

    def _drop_queued(self) -> None:
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not None:
                dropped += 1
        self._done(dropped)

    def _open_stream(self, rate: int, channels: int) -> sd.RawOutputStream:
        stream = sd.RawOutputStream(
            samplerate=rate,
            channels=channels,
            dtype="int16",
            device=self.config.device_name,
        )
        stream.start()
        return stream

    def _writer(self) -> None:
        stream: sd.RawOutputStream | None = None
        current: tuple[int, int] | None = None
        try:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                pcm, rate, channels = item
                generation = self._generation
                try:
                    if stream is None or current != (rate, channels):
                        if stream is not None:
                            stream.stop()
                            stream.close()
                            stream = None
                        stream = self._open_stream(rate, channels)
                        current = (rate, channels)
                    if generation == self._generation:
                        stream.write(pcm)
                finally:
                    self._done()
        except sd.PortAudioError:
            LOGGER.exception("Audio output failed.")
        finally:
            if stream is not None:
                stream.stop()
                stream.close()
            # Nothing will play what is left; release waiters.
            self._drop_queued()
