"""Runtime coordination: capture state machine and turn orchestration."""

from .capture import CaptureState, SpeechCaptureController
from .controller import ConversationOrchestrator

__all__ = ["CaptureState", "ConversationOrchestrator", "SpeechCaptureController"]
