"""Local configuration models for the voice chat client."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class InferenceSettings:
    """Remote model endpoint and fixed generation parameters."""

    api_key: str | None = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-1.5-flash"
    timeout_s: float = 30.0
    max_retries: int = 3
    retry_delay_s: float = 1.0
    temperature: float = 0.7
    max_output_tokens: int = 2048
    top_p: float = 0.8
    top_k: int = 40


@dataclass(slots=True)
class CaptureSettings:
    """Continuous recognition settings."""

    enabled: bool = True
    locale: str = "en-US"
    input_device: str | None = None
    whisper_model: str = "base.en"
    whisper_device: str = "auto"
    whisper_compute_type: str = "default"
    vad_aggressiveness: int = 2
    silence_ms: int = 800
    interim_interval_ms: int = 1200
    no_speech_timeout_s: float = 8.0
    restart_delay_s: float = 0.1


@dataclass(slots=True)
class NarrationSettings:
    """Speech synthesis settings."""

    enabled: bool = True
    locale: str = "en-US"
    voice: str = "en_US-lessac-medium"
    rate: float = 1.0
    output_device: str | None = None


@dataclass(slots=True)
class TranscriptSettings:
    """Bounds for the inference context window."""

    max_turns: int = 10


@dataclass(slots=True)
class LoggingSettings:
    """Log level and rotation."""

    level: str = "INFO"
    log_dir: str | None = None
    rotate_mb: int = 5
    retention_days: int = 7


@dataclass(slots=True)
class AppSettings:
    """Full set of settings for the client."""

    inference: InferenceSettings = field(default_factory=InferenceSettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    narration: NarrationSettings = field(default_factory=NarrationSettings)
    transcript: TranscriptSettings = field(default_factory=TranscriptSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
