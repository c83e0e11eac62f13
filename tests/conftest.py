from __future__ import annotations

import asyncio
from typing import Any

import pytest

from voice_chat.errors import CaptureStartError, CaptureUnavailable
from voice_chat.services.schemas import RecognitionEvent, RecognitionResult


class FakeDevice:
    """Recognition device driven by the test."""

    locale = "en-US"

    def __init__(self, log: list[str], *, fail_open: bool = False, end_on_stop: bool = True) -> None:
        self.log = log
        self.fail_open = fail_open
        self.end_on_stop = end_on_stop
        self.listener: Any = None
        self.opens = 0
        self.stops = 0

    def open(self, listener: Any) -> None:
        if self.fail_open:
            raise CaptureStartError("device busy")
        self.opens += 1
        self.listener = listener
        self.log.append("start-capture")
        listener.on_start()

    def stop(self) -> None:
        self.stops += 1
        self.log.append("stop-capture")
        if self.end_on_stop:
            self.listener.on_end()

    # helpers -----------------------------------------------------------
    def final(self, *texts: str) -> None:
        results = tuple(RecognitionResult(text, final=True) for text in texts)
        self.listener.on_result(RecognitionEvent(results, 0))

    def interim(self, text: str) -> None:
        self.listener.on_result(RecognitionEvent((RecognitionResult(text, final=False),), 0))

    def end(self) -> None:
        self.listener.on_end()

    def error(self, code: str) -> None:
        self.listener.on_error(code)


class FakeDeviceFactory:
    def __init__(self) -> None:
        self.log: list[str] = []
        self.devices: list[FakeDevice] = []
        self.unavailable = False
        self.fail_open = False
        self.end_on_stop = True

    def __call__(self) -> FakeDevice:
        if self.unavailable:
            raise CaptureUnavailable("no microphone")
        device = FakeDevice(self.log, fail_open=self.fail_open, end_on_stop=self.end_on_stop)
        self.devices.append(device)
        return device

    @property
    def current(self) -> FakeDevice:
        return self.devices[-1]

    @property
    def total_opens(self) -> int:
        return sum(device.opens for device in self.devices)


class ScriptedInference:
    """Inference double returning queued replies or raising queued errors."""

    def __init__(self, *replies: Any, gate: asyncio.Event | None = None) -> None:
        self.replies = list(replies)
        self.gate = gate
        self.calls: list[str] = []
        self.closed = False

    async def send(self, utterance: str) -> str:
        self.calls.append(utterance)
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True


class RecordingNarrator:
    """Narrator double; ``wait_idle`` blocks until ``finish()`` when gated."""

    def __init__(self, *, fail: bool = False, gated: bool = False) -> None:
        self.spoken: list[str] = []
        self.fail = fail
        self.waits = 0
        self._done = asyncio.Event()
        if not gated:
            self._done.set()

    def speak(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("no audio device")
        self.spoken.append(text)

    async def wait_idle(self) -> None:
        self.waits += 1
        await self._done.wait()

    def finish(self) -> None:
        self._done.set()


@pytest.fixture
def device_factory() -> FakeDeviceFactory:
    return FakeDeviceFactory()


@pytest.fixture
def narrator() -> RecordingNarrator:
    return RecordingNarrator()


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOICE_CHAT_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
