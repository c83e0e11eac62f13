"""Contract between the capture controller and a recognition device."""

from __future__ import annotations

from typing import Callable, Protocol

from ..services.schemas import RecognitionEvent


class RecognitionListener(Protocol):
    """Callbacks a device delivers on the event loop thread."""

    def on_start(self) -> None: ...

    def on_result(self, event: RecognitionEvent) -> None: ...

    def on_end(self) -> None: ...

    def on_error(self, code: str) -> None: ...


class RecognitionDevice(Protocol):
    """Continuous recognition session (continuous mode, interim results, fixed locale).

    ``open`` raises :class:`~voice_chat.errors.CaptureStartError` when the
    session cannot start. After ``stop`` the device still delivers ``on_end``.
    """

    locale: str

    def open(self, listener: RecognitionListener) -> None: ...

    def stop(self) -> None: ...


DeviceFactory = Callable[[], RecognitionDevice]
