"""Text-to-speech helpers using Piper."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from piper import PiperVoice, SynthesisConfig

_MARKUP_RE = re.compile(r"[*_`#<>]")
_SPACE_RE = re.compile(r"\s+")


@dataclass(slots=True)
class PiperConfig:
    """Piper model configuration."""

    model_path: Path
    config_path: Path
    speaker_id: int | None = None
    length_scale: float = 1.0


class PiperTTS:
    """Thin wrapper around PiperVoice."""

    def __init__(self, config: PiperConfig) -> None:
        self.config = config
        if not config.model_path.exists():
            raise FileNotFoundError(f"Piper model not found: {config.model_path}")
        if not config.config_path.exists():
            raise FileNotFoundError(f"Piper config not found: {config.config_path}")
        self._voice = PiperVoice.load(str(config.model_path), str(config.config_path))

    @classmethod
    def from_directory(cls, root: Path, *, length_scale: float = 1.0) -> "PiperTTS":
        """Load the first ``*.onnx`` voice found under ``root``."""
        model_path = _find_file(root, ".onnx")
        config_path = model_path.with_name(model_path.name + ".json")
        return cls(PiperConfig(model_path=model_path, config_path=config_path, length_scale=length_scale))

    def synthesize_stream(self, text: str) -> Iterator[tuple[bytes, int, int]]:
        """Yield ``(pcm_int16, sample_rate, channels)`` chunks."""
        text = sanitize_text(text)
        if not text:
            return
        kwargs = {}
        if self.config.speaker_id is not None:
            kwargs["speaker_id"] = self.config.speaker_id
        if self.config.length_scale != 1.0:
            kwargs["length_scale"] = self.config.length_scale
        syn_config = SynthesisConfig(**kwargs) if kwargs else None
        for chunk in self._voice.synthesize(text, syn_config=syn_config):
            yield chunk.audio_int16_bytes, chunk.sample_rate, chunk.sample_channels or 1


def sanitize_text(text: str) -> str:
    """Strip markdown symbols the voice would otherwise read aloud."""
    cleaned = _MARKUP_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", cleaned).strip()


def _find_file(root: Path, extension: str) -> Path:
    if root.is_file() and root.name.endswith(extension):
        return root
    for candidate in sorted(root.rglob(f"*{extension}")):
        return candidate
    raise FileNotFoundError(f"No {extension} file under {root}")
