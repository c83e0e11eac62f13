from __future__ import annotations

import asyncio

import pytest

try:
    import sounddevice as sd

    from voice_chat.audio.recognizer import RecognizerConfig, WhisperRecognizer, build_recognizer_factory
except OSError:  # PortAudio shared library missing on the test host
    pytest.skip("PortAudio is not available", allow_module_level=True)

from voice_chat.audio.segmenter import SegmenterConfig
from voice_chat.config.settings import CaptureSettings
from voice_chat.errors import NO_SPEECH, CaptureStartError, CaptureUnavailable

FRAME_BYTES = 960
VOICED = b"\x01" * FRAME_BYTES
SILENT = bytes(FRAME_BYTES)


class EnergyDetector:
    def is_speech(self, frame: bytes, sample_rate: int) -> bool:
        return any(frame)


class FakeMicrophone:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.consumer = None
        self.stopped = 0

    def start(self, consumer) -> None:
        if self.error is not None:
            raise self.error
        self.consumer = consumer

    def stop(self) -> None:
        self.stopped += 1

    def push(self, *frames: bytes) -> None:
        for frame in frames:
            self.consumer(frame)


class FakeEngine:
    def __init__(self, text: str) -> None:
        self.text = text
        self.segments: list[bytes] = []

    def transcribe(self, pcm16: bytes) -> str:
        self.segments.append(pcm16)
        return self.text


class RecordingListener:
    def __init__(self) -> None:
        self.events: list[object] = []
        self.ended = asyncio.Event()

    def on_start(self) -> None:
        self.events.append("start")

    def on_result(self, event) -> None:
        self.events.append(event)

    def on_end(self) -> None:
        self.events.append("end")
        self.ended.set()

    def on_error(self, code: str) -> None:
        self.events.append(f"error:{code}")


def _recognizer(microphone: FakeMicrophone, engine: FakeEngine, *, no_speech_timeout_s: float = 10.0) -> WhisperRecognizer:
    config = RecognizerConfig(
        no_speech_timeout_s=no_speech_timeout_s,
        segmenter=SegmenterConfig(pre_roll_ms=90, min_speech_ms=60, silence_ms=90, interim_interval_ms=3000),
    )
    return WhisperRecognizer(
        engine,
        loop=asyncio.get_running_loop(),
        config=config,
        microphone=microphone,
        detector=EnergyDetector(),
    )


@pytest.mark.asyncio
async def test_final_transcript_is_delivered_then_session_ends() -> None:
    microphone = FakeMicrophone()
    engine = FakeEngine("hello world")
    recognizer = _recognizer(microphone, engine)
    listener = RecordingListener()

    recognizer.open(listener)
    microphone.push(VOICED, VOICED, SILENT, SILENT, SILENT)
    for _ in range(100):
        if len(listener.events) >= 2:
            break
        await asyncio.sleep(0.01)
    recognizer.stop()
    await asyncio.wait_for(listener.ended.wait(), timeout=2)

    assert listener.events[0] == "start"
    event = listener.events[1]
    assert event.result_index == 0
    assert [(r.text, r.final) for r in event.fresh()] == [("hello world", True)]
    assert listener.events[-1] == "end"
    assert len(engine.segments) == 1
    assert microphone.stopped >= 1


@pytest.mark.asyncio
async def test_silence_reports_no_speech_then_ends() -> None:
    microphone = FakeMicrophone()
    recognizer = _recognizer(microphone, FakeEngine("unused"), no_speech_timeout_s=0.09)
    listener = RecordingListener()

    recognizer.open(listener)
    microphone.push(SILENT, SILENT, SILENT)
    await asyncio.wait_for(listener.ended.wait(), timeout=2)

    assert listener.events == ["start", f"error:{NO_SPEECH}", "end"]
    # the device can be reopened once the previous session has ended
    second = RecordingListener()
    recognizer.open(second)
    recognizer.stop()
    await asyncio.wait_for(second.ended.wait(), timeout=2)
    assert second.events == ["start", "end"]


@pytest.mark.asyncio
async def test_open_while_running_is_rejected() -> None:
    microphone = FakeMicrophone()
    recognizer = _recognizer(microphone, FakeEngine(""))
    listener = RecordingListener()
    recognizer.open(listener)
    with pytest.raises(CaptureStartError):
        recognizer.open(RecordingListener())
    recognizer.stop()
    await asyncio.wait_for(listener.ended.wait(), timeout=2)


@pytest.mark.asyncio
async def test_microphone_failure_raises_start_error() -> None:
    microphone = FakeMicrophone(error=sd.PortAudioError("device busy"))
    recognizer = _recognizer(microphone, FakeEngine(""))
    listener = RecordingListener()
    with pytest.raises(CaptureStartError, match="device busy"):
        recognizer.open(listener)
    await asyncio.sleep(0.01)
    assert listener.events == []


@pytest.mark.asyncio
async def test_disabled_capture_is_unavailable() -> None:
    factory = build_recognizer_factory(CaptureSettings(enabled=False), asyncio.get_running_loop())
    with pytest.raises(CaptureUnavailable):
        factory()
