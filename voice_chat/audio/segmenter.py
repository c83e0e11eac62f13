"""Voice activity gating that cuts the microphone stream into utterances."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import webrtcvad

_VALID_SAMPLE_RATES = (8000, 16_000, 32_000, 48_000)
_VALID_FRAME_DURATIONS_MS = (10, 20, 30)
_BYTES_PER_SAMPLE = 2


class SpeechDetector(Protocol):
    def is_speech(self, frame: bytes, sample_rate: int) -> bool: ...


@dataclass(slots=True)
class SegmenterConfig:
    """Timing thresholds, in milliseconds unless noted."""

    sample_rate: int = 16_000
    frame_ms: int = 30
    aggressiveness: int = 2  # 0 (sensitive) to 3 (strict)
    silence_ms: int = 800
    pre_roll_ms: int = 300
    min_speech_ms: int = 240
    interim_interval_ms: int = 1200
    max_segment_s: float = 20.0


class SegmentKind(str, Enum):
    INTERIM = "interim"
    FINAL = "final"


@dataclass(frozen=True, slots=True)
class Segment:
    kind: SegmentKind
    pcm: bytes


def normalize_frame(frame: bytes, sample_rate: int) -> bytes:
    """Pad or trim a frame to the nearest length WebRTC VAD accepts."""
    if not frame or sample_rate not in _VALID_SAMPLE_RATES:
        return frame
    frame_samples = len(frame) // _BYTES_PER_SAMPLE
    if frame_samples == 0:
        return frame
    expected = [sample_rate * duration // 1000 for duration in _VALID_FRAME_DURATIONS_MS]
    target_bytes = min(expected, key=lambda n: abs(n - frame_samples)) * _BYTES_PER_SAMPLE
    if len(frame) >= target_bytes:
        return frame[:target_bytes]
    return frame + bytes(target_bytes - len(frame))


class WebRtcDetector:
    """WebRTC VAD with frame normalization."""

    def __init__(self, aggressiveness: int = 2) -> None:
        self._vad = webrtcvad.Vad(max(0, min(3, aggressiveness)))

    def is_speech(self, frame: bytes, sample_rate: int) -> bool:
        return self._vad.is_speech(normalize_frame(frame, sample_rate), sample_rate)


class SpeechSegmenter:
    """Feed fixed-size frames; get interim snapshots and final utterances back.

    An utterance opens once ``min_speech_ms`` of voiced audio has been seen
    (with ``pre_roll_ms`` of leading audio kept) and closes after
    ``silence_ms`` of silence or at ``max_segment_s``. While it is open an
    interim snapshot is produced every ``interim_interval_ms``.
    ``idle_ms`` counts the time since the last voiced frame, so callers can
    implement a no-speech timeout.
    """

    def __init__(self, config: SegmenterConfig | None = None, detector: SpeechDetector | None = None) -> None:
        self.config = config or SegmenterConfig()
        self.detector = detector or WebRtcDetector(self.config.aggressiveness)
        frame_ms = self.config.frame_ms
        self._pre_roll: deque[bytes] = deque(maxlen=max(1, self.config.pre_roll_ms // frame_ms))
        self._min_speech_frames = max(1, self.config.min_speech_ms // frame_ms)
        self._max_silence_frames = max(1, self.config.silence_ms // frame_ms)
        self._interim_frames = max(1, self.config.interim_interval_ms // frame_ms)
        self._max_frames = max(self._min_speech_frames + 1, int(self.config.max_segment_s * 1000 / frame_ms))
        self.reset()

    def reset(self) -> None:
        self._pre_roll.clear()
        self._frames: list[bytes] = []
        self._voiced_run = 0
        self._speaking = False
        self._silence_frames = 0
        self._since_interim = 0
        self._idle_frames = 0

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def idle_ms(self) -> int:
        return self._idle_frames * self.config.frame_ms

    def add_frame(self, frame: bytes) -> Segment | None:
        voiced = self.detector.is_speech(frame, self.config.sample_rate)
        self._idle_frames = 0 if voiced else self._idle_frames + 1

        if not self._speaking:
            self._pre_roll.append(frame)
            self._voiced_run = self._voiced_run + 1 if voiced else 0
            if self._voiced_run >= self._min_speech_frames:
                self._speaking = True
                self._frames = list(self._pre_roll)
                self._pre_roll.clear()
                self._silence_frames = 0
                self._since_interim = 0
            return None

        self._frames.append(frame)
        self._silence_frames = 0 if voiced else self._silence_frames + 1
        if self._silence_frames >= self._max_silence_frames or len(self._frames) >= self._max_frames:
            return self._close()

        self._since_interim += 1
        if self._since_interim >= self._interim_frames:
            self._since_interim = 0
            return Segment(SegmentKind.INTERIM, b"".join(self._frames))
        return None

    def _close(self) -> Segment:
        pcm = b"".join(self._frames)
        self._frames = []
        self._speaking = False
        self._voiced_run = 0
        self._silence_frames = 0
        self._since_interim = 0
        return Segment(SegmentKind.FINAL, pcm)
