"""Processing status shared with the rendering layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProcessingStatus:
    """Read-only snapshot published to the rendering layer."""

    is_listening: bool = False
    is_processing: bool = False

    @property
    def label(self) -> str:
        if self.is_processing:
            return "Processing..."
        if self.is_listening:
            return "Listening..."
        return "Ready"
