"""Data schemas shared by the capture, inference and rendering layers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class Sender(str, Enum):
    """Author of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TurnRole(str, Enum):
    """Role of a conversation turn as understood by the model."""

    USER = "user"
    MODEL = "model"


class InputSource(str, Enum):
    """Where a user utterance came from."""

    TEXT = "text"
    SPEECH = "speech"


def now_ms() -> int:
    """Wall-clock timestamp in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Message:
    """Transcript entry, immutable once appended."""

    sender: Sender
    text: str
    timestamp: int = field(default_factory=now_ms)
    details: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", Sender(self.sender))
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @classmethod
    def user(cls, text: str, **details: Any) -> "Message":
        return cls(Sender.USER, text, details=details)

    @classmethod
    def assistant(cls, text: str, **details: Any) -> "Message":
        return cls(Sender.ASSISTANT, text, details=details)

    @classmethod
    def system(cls, text: str, **details: Any) -> "Message":
        return cls(Sender.SYSTEM, text, details=details)


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    """Projection of a user or assistant message for the model context."""

    role: TurnRole
    content: str

    @classmethod
    def from_message(cls, message: Message) -> "ConversationTurn | None":
        """Return the turn for a message, or None for system messages."""
        if message.sender is Sender.USER:
            return cls(TurnRole.USER, message.text)
        if message.sender is Sender.ASSISTANT:
            return cls(TurnRole.MODEL, message.text)
        return None


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    """One recognition hypothesis delivered by the capture device."""

    text: str
    final: bool = False
    confidence: float | None = None


@dataclass(frozen=True, slots=True)
class RecognitionEvent:
    """Batch of results; entries before ``result_index`` were already seen."""

    results: tuple[RecognitionResult, ...]
    result_index: int = 0

    def fresh(self) -> tuple[RecognitionResult, ...]:
        return self.results[self.result_index :]


@dataclass(frozen=True, slots=True)
class NarrationRequest:
    """Text to narrate with its voice parameters."""

    text: str
    locale: str = "en-US"
    rate: float = 1.0
