"""Continuous listening state machine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..audio.device import DeviceFactory, RecognitionDevice
from ..errors import ABORTED, NO_SPEECH, CaptureError, CaptureRestartError, CaptureStartError, CaptureUnavailable
from ..services.schemas import RecognitionEvent

LOGGER = logging.getLogger(__name__)

UtteranceHandler = Callable[[str], bool]
ListeningCallback = Callable[[bool], None]
FailureCallback = Callable[[str], None]
InterimCallback = Callable[[str], None]

DEFAULT_RESTART_DELAY = 0.1

UNAVAILABLE_MESSAGE = "Speech recognition is not available on this device."
START_FAILED_MESSAGE = "Failed to start listening. Please try again."


class CaptureState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    RESTARTING = "restarting"
    STOPPING = "stopping"
    SUSPENDED = "suspended"


@dataclass(slots=True)
class CaptureSession:
    """State of one open/close cycle of the device."""

    accumulated_final_text: str = ""
    manually_stopped: bool = False
    is_active: bool = False
    handed_off: bool = False
    failed: bool = False
    resume_pending: bool = False


class _SessionListener:
    """Routes device callbacks to the controller, tagged with their session."""

    __slots__ = ("_controller", "_session")

    def __init__(self, controller: "SpeechCaptureController", session: CaptureSession) -> None:
        self._controller = controller
        self._session = session

    def on_start(self) -> None:
        self._controller._on_start(self._session)

    def on_result(self, event: RecognitionEvent) -> None:
        self._controller._on_result(self._session, event)

    def on_end(self) -> None:
        self._controller._on_end(self._session)

    def on_error(self, code: str) -> None:
        self._controller._on_error(self._session, code)


class SpeechCaptureController:
    """Own the recognition device and keep it listening.

    Sessions that end on their own (silence, platform timeouts) are reopened
    after ``restart_delay`` seconds. A final transcript closes the session,
    is handed to ``on_utterance`` and capture stays suspended until
    :meth:`resume_after_turn`. Only :meth:`stop` disables auto-restart.
    """

    def __init__(
        self,
        device_factory: DeviceFactory,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        is_busy: Callable[[], bool] = lambda: False,
    ) -> None:
        self._factory = device_factory
        self._loop = loop
        self.restart_delay = restart_delay
        self._is_busy = is_busy
        self._device: RecognitionDevice | None = None
        self._session: CaptureSession | None = None
        self._state = CaptureState.IDLE
        self._listening = False
        self._restart_handle: asyncio.TimerHandle | None = None
        self._unavailable_reported = False

        self._utterance_handler: Optional[UtteranceHandler] = None
        self._listening_callback: Optional[ListeningCallback] = None
        self._failure_callback: Optional[FailureCallback] = None
        self._interim_callback: Optional[InterimCallback] = None

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #
    def bind(
        self,
        *,
        on_utterance: UtteranceHandler,
        on_listening: Optional[ListeningCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        on_interim: Optional[InterimCallback] = None,
        is_busy: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._utterance_handler = on_utterance
        self._listening_callback = on_listening
        self._failure_callback = on_failure
        self._interim_callback = on_interim
        if is_busy is not None:
            self._is_busy = is_busy

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_suspended(self) -> bool:
        return self._state is CaptureState.SUSPENDED

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def start(self) -> bool:
        """Open a listening session unless one is running or a turn is in progress."""
        if self._state in (CaptureState.STARTING, CaptureState.LISTENING, CaptureState.RESTARTING):
            return False
        if self._state is CaptureState.SUSPENDED or self._is_busy():
            return False
        if self._session is not None and self._session.is_active:
            LOGGER.debug("Previous session is still closing; start ignored.")
            return False
        try:
            self._open_session()
        except CaptureUnavailable as exc:
            LOGGER.warning("Speech capture unavailable: %s", exc)
            self._release_device()
            self._settle_idle()
            if not self._unavailable_reported:
                self._unavailable_reported = True
                self._report_failure(UNAVAILABLE_MESSAGE)
            return False
        except CaptureError as exc:
            LOGGER.error("Failed to start recognition: %s", exc)
            self._release_device()
            self._settle_idle()
            self._report_failure(START_FAILED_MESSAGE)
            return False
        return True

    def stop(self) -> None:
        """Manual stop: close the device and disable auto-restart."""
        self._cancel_restart()
        session, self._session = self._session, None
        if session is not None:
            session.manually_stopped = True
            session.resume_pending = False
        device = self._device
        if device is not None and session is not None and session.is_active:
            self._state = CaptureState.STOPPING
            try:
                device.stop()
            except CaptureError as exc:
                LOGGER.warning("Error while stopping recognition: %s", exc)
        self._release_device()
        self._settle_idle()

    def close(self) -> None:
        """Stop and drop the device (shutdown)."""
        self.stop()
        self._utterance_handler = None

    def suspend(self) -> bool:
        """Close the device for the duration of a turn started elsewhere."""
        session = self._session
        if self._state is CaptureState.SUSPENDED:
            # Another turn is taking over; a deferred reopen must wait for it.
            if session is not None:
                session.resume_pending = False
            return True
        if session is None or self._state not in (CaptureState.LISTENING, CaptureState.STARTING, CaptureState.RESTARTING):
            return False
        self._cancel_restart()
        self._close_for_turn(session)
        return True

    def resume_after_turn(self) -> bool:
        """Reopen the device once the turn that suspended it is committed."""
        if self._state is not CaptureState.SUSPENDED:
            return False
        session = self._session
        if session is not None and session.is_active:
            # The device has not reported its end yet; reopen from _on_end.
            session.resume_pending = True
            return True
        return self._reopen("after turn")

    # ------------------------------------------------------------------ #
    # Device callbacks
    # ------------------------------------------------------------------ #
    def _on_start(self, session: CaptureSession) -> None:
        if session is not self._session or self._state is CaptureState.SUSPENDED:
            return
        session.is_active = True
        session.accumulated_final_text = ""
        session.manually_stopped = False
        self._state = CaptureState.LISTENING
        self._set_listening(True)
        LOGGER.debug("Listening session started.")

    def _on_result(self, session: CaptureSession, event: RecognitionEvent) -> None:
        if session is not self._session or session.handed_off or self._state is not CaptureState.LISTENING:
            return
        interim = ""
        for result in event.fresh():
            if result.final:
                session.accumulated_final_text += result.text + " "
            else:
                interim += result.text
        if interim:
            LOGGER.debug("Interim transcript: %s", interim)
            if self._interim_callback is not None:
                self._interim_callback(interim)

        text = session.accumulated_final_text.strip()
        if not text:
            return
        self._close_for_turn(session)
        LOGGER.info("Final transcript captured (%d chars).", len(text))
        handler = self._utterance_handler
        accepted = handler(text) if handler is not None else False
        if not accepted:
            LOGGER.warning("Utterance rejected while a turn is in progress; it was dropped.")

    def _on_end(self, session: CaptureSession) -> None:
        if session is not self._session:
            return
        session.is_active = False
        if self._state is CaptureState.SUSPENDED:
            if session.resume_pending:
                session.resume_pending = False
                if self._is_busy():
                    LOGGER.debug("Deferred reopen dropped; a turn is in progress.")
                else:
                    self._reopen("after turn")
            return
        if session.manually_stopped or session.failed:
            self._session = None
            self._settle_idle()
            return
        self._state = CaptureState.RESTARTING
        loop = self._loop or asyncio.get_running_loop()
        self._restart_handle = loop.call_later(self.restart_delay, self._restart_after_cooldown)
        LOGGER.debug("Session ended by the device; restarting in %.2fs.", self.restart_delay)

    def _on_error(self, session: CaptureSession, code: str) -> None:
        if session is not self._session:
            return
        if code == NO_SPEECH:
            return
        if code == ABORTED:
            session.manually_stopped = True
            if self._state is not CaptureState.SUSPENDED:
                self._set_listening(False)
            return
        LOGGER.warning("Recognition error: %s", code)
        session.failed = True
        if self._state is not CaptureState.SUSPENDED:
            self._state = CaptureState.IDLE
            self._set_listening(False)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _open_session(self) -> None:
        if self._device is None:
            self._device = self._factory()
        session = CaptureSession()
        self._session = session
        self._state = CaptureState.STARTING
        try:
            self._device.open(_SessionListener(self, session))
        except CaptureError:
            self._session = None
            raise
        except (RuntimeError, OSError) as exc:
            self._session = None
            raise CaptureStartError(str(exc)) from exc
        session.is_active = True

    def _close_for_turn(self, session: CaptureSession) -> None:
        session.handed_off = True
        session.manually_stopped = True
        self._state = CaptureState.SUSPENDED
        self._set_listening(False)
        self._stop_device(session)

    def _stop_device(self, session: CaptureSession) -> None:
        if self._device is None or not session.is_active:
            return
        try:
            self._device.stop()
        except CaptureError as exc:
            LOGGER.warning("Error while stopping recognition: %s", exc)

    def _restart_after_cooldown(self) -> None:
        self._restart_handle = None
        if self._state is not CaptureState.RESTARTING:
            return
        self._reopen("after cool-down")

    def _reopen(self, reason: str) -> bool:
        try:
            self._open_session()
        except (CaptureError, RuntimeError, OSError) as exc:
            error = CaptureRestartError(f"Could not reopen capture {reason}: {exc}")
            LOGGER.error("%s", error)
            self._session = None
            self._release_device()
            self._settle_idle()
            return False
        LOGGER.debug("Capture reopened %s.", reason)
        return True

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _release_device(self) -> None:
        self._device = None

    def _settle_idle(self) -> None:
        self._state = CaptureState.IDLE
        self._set_listening(False)

    def _set_listening(self, value: bool) -> None:
        if self._listening == value:
            return
        self._listening = value
        if self._listening_callback is not None:
            self._listening_callback(value)

    def _report_failure(self, message: str) -> None:
        if self._failure_callback is not None:
            self._failure_callback(message)
