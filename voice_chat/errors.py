"""Exception taxonomy for the voice chat client."""

from __future__ import annotations


NO_SPEECH = "no-speech"
ABORTED = "aborted"
AUDIO_CAPTURE = "audio-capture"


class VoiceChatError(Exception):
    """Base class for every error raised by the client."""


# ---------------------------------------------------------------------- #
# Capture path
# ---------------------------------------------------------------------- #
class CaptureError(VoiceChatError):
    """Speech capture failure."""


class CaptureUnavailable(CaptureError):
    """Speech recognition capability is missing on this host."""


class CaptureStartError(CaptureError):
    """The recognition device refused to open a session."""


class CaptureRestartError(CaptureError):
    """A session could not be reopened after a cool-down or a turn."""


# ---------------------------------------------------------------------- #
# Inference path
# ---------------------------------------------------------------------- #
class InferenceError(VoiceChatError):
    """Base class for remote inference failures."""

    retryable = False


class InferenceTimeout(InferenceError):
    """The request exceeded its deadline."""


class MissingCredential(InferenceError):
    """No API key is configured."""


class ApiError(InferenceError):
    """Upstream returned an error or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        # Client errors other than throttling will fail the same way again.
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class InvalidResponse(InferenceError):
    """Successful status but no usable text in the payload."""

    retryable = True
