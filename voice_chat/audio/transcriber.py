"""ASR utilities powered by faster-whisper."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from faster_whisper import WhisperModel


@dataclass(slots=True)
class WhisperConfig:
    """Configuration for the faster-whisper engine."""

    model: str = "base.en"
    device: str = "auto"
    compute_type: str = "default"
    language: str = "en"


def language_for_locale(locale: str) -> str:
    """``en-US`` -> ``en``."""
    return (locale or "en").replace("_", "-").split("-", 1)[0].lower()


class FasterWhisperEngine:
    """Thin wrapper around WhisperModel for 16 kHz int16 PCM."""

    def __init__(self, config: WhisperConfig) -> None:
        self.config = config
        self.model = WhisperModel(
            config.model,
            device=config.device,
            compute_type=config.compute_type,
        )

    def transcribe(self, pcm16: bytes) -> str:
        """Transcribe a mono PCM int16 buffer into text."""
        audio = np.frombuffer(pcm16, dtype=np.int16).astype(np.float32) / 32768.0
        if audio.size == 0:
            return ""
        segments, _ = self.model.transcribe(
            audio,
            language=self.config.language,
            beam_size=1,
            vad_filter=False,
        )
        return " ".join(segment.text.strip() for segment in segments).strip()
