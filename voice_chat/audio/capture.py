"""Microphone capture."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable

import sounddevice as sd

LOGGER = logging.getLogger(__name__)

FrameConsumer = Callable[[bytes], None]


@dataclass(slots=True)
class MicConfig:
    """Microphone capture configuration."""

    sample_rate: int = 16_000
    channels: int = 1
    frame_duration_ms: int = 30
    device_name: str | None = None

    @property
    def frame_samples(self) -> int:
        return int(self.sample_rate * self.frame_duration_ms / 1000)


def available_input_devices() -> list[str]:
    """Names of devices with at least one input channel."""
    return [
        device["name"]
        for device in sd.query_devices()
        if int(device.get("max_input_channels", 0)) > 0
    ]


class MicrophoneCapture:
    """Raw int16 microphone stream delivering fixed-size frames."""

    def __init__(self, config: MicConfig | None = None) -> None:
        self.config = config or MicConfig()
        self._consumer: FrameConsumer | None = None
        self._stream: sd.RawInputStream | None = None
        self._lock = Lock()

    @property
    def running(self) -> bool:
        return self._stream is not None

    def start(self, consumer: FrameConsumer) -> None:
        """Open the input stream; raises ``sd.PortAudioError`` on failure."""
        with self._lock:
            if self._stream is not None:
                return
            self._consumer = consumer
            stream = sd.RawInputStream(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype="int16",
                blocksize=self.config.frame_samples,
                callback=self._on_frame,
                device=self.config.device_name,
            )
            stream.start()
            self._stream = stream
            LOGGER.debug("Microphone capture started.")

    def stop(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
            self._consumer = None
        if stream is None:
            return
        stream.stop()
        stream.close()
        LOGGER.debug("Microphone capture stopped.")

    def _on_frame(self, indata, frames: int, time, status) -> None:  # noqa: ANN001
        if status:  # pragma: no cover
            LOGGER.warning("Microphone status: %s", status)
        consumer = self._consumer
        if consumer is not None:
            consumer(bytes(indata))
