from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from voice_chat.config.settings import InferenceSettings
from voice_chat.errors import ApiError, InferenceTimeout, InvalidResponse, MissingCredential
from voice_chat.services.api import InferenceClient

BASE_URL = "https://generativelanguage.test/v1beta/"


def _reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def _error(status: int, message: str = "upstream down") -> httpx.Response:
    return httpx.Response(status, json={"error": {"code": status, "message": message}})


class Recorder:
    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _client(handler, *, sleeps: list[float] | None = None, **overrides) -> InferenceClient:
    settings = InferenceSettings(api_key="test-key", **overrides)
    transport = httpx.MockTransport(handler)
    http = httpx.AsyncClient(transport=transport, base_url=BASE_URL)

    async def _sleep(delay: float) -> None:
        if sleeps is not None:
            sleeps.append(delay)

    return InferenceClient(settings, client=http, sleep=_sleep)


@pytest.mark.asyncio
async def test_send_returns_trimmed_candidate_text() -> None:
    recorder = Recorder(_reply("  Hello!  "))
    client = _client(recorder)
    assert await client.send("hi") == "Hello!"
    request = recorder.requests[0]
    assert request.url.path.endswith("/models/gemini-1.5-flash:generateContent")
    assert request.url.params["key"] == "test-key"


@pytest.mark.asyncio
async def test_request_is_single_turn_with_fixed_generation_config() -> None:
    recorder = Recorder(_reply("one"), _reply("two"))
    client = _client(recorder)
    await client.send("first question")
    await client.send("second question")
    body = json.loads(recorder.requests[1].content)
    # The conversation window is never sent: each call carries only its utterance.
    assert body["contents"] == [{"parts": [{"text": "second question"}]}]
    assert body["generationConfig"] == {
        "temperature": 0.7,
        "maxOutputTokens": 2048,
        "topP": 0.8,
        "topK": 40,
    }


@pytest.mark.asyncio
async def test_three_server_errors_then_success_within_retry_cap() -> None:
    recorder = Recorder(_error(503), _error(503), _error(503), _reply("finally"))
    sleeps: list[float] = []
    client = _client(recorder, sleeps=sleeps)
    assert await client.send("hi") == "finally"
    assert len(recorder.requests) == 4
    assert sleeps == [1.0, 1.0, 1.0]
    assert client.attempts == 4
    bodies = {req.content for req in recorder.requests}
    assert len(bodies) == 1


@pytest.mark.asyncio
async def test_retries_are_capped_and_last_error_surfaces() -> None:
    recorder = Recorder(*[_error(500, f"boom {i}") for i in range(4)])
    sleeps: list[float] = []
    client = _client(recorder, sleeps=sleeps)
    with pytest.raises(ApiError) as excinfo:
        await client.send("hi")
    assert str(excinfo.value) == "boom 3"
    assert excinfo.value.status_code == 500
    assert len(recorder.requests) == 4
    assert len(sleeps) == 3


@pytest.mark.asyncio
async def test_timeout_is_not_retried() -> None:
    calls: list[httpx.Request] = []

    async def slow(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(1)
        return _reply("too late")

    sleeps: list[float] = []
    client = _client(slow, sleeps=sleeps, timeout_s=0.05)
    with pytest.raises(InferenceTimeout):
        await client.send("hi")
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_empty_candidates_is_invalid_response_and_retried() -> None:
    recorder = Recorder(httpx.Response(200, json={"candidates": []}), _reply("ok"))
    client = _client(recorder)
    assert await client.send("hi") == "ok"
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_invalid_response_after_exhausting_retries() -> None:
    blank = {"candidates": [{"content": {"parts": [{"text": "  "}]}}]}
    recorder = Recorder(*[httpx.Response(200, json=blank) for _ in range(4)])
    client = _client(recorder)
    with pytest.raises(InvalidResponse, match="Empty response from API"):
        await client.send("hi")


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    recorder = Recorder(_error(400, "API key not valid"))
    sleeps: list[float] = []
    client = _client(recorder, sleeps=sleeps)
    with pytest.raises(ApiError, match="API key not valid"):
        await client.send("hi")
    assert len(recorder.requests) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_rate_limit_is_retried() -> None:
    recorder = Recorder(_error(429, "quota"), _reply("ok"))
    client = _client(recorder)
    assert await client.send("hi") == "ok"


@pytest.mark.asyncio
async def test_error_without_message_uses_generic_text() -> None:
    recorder = Recorder(*[httpx.Response(502, text="<html>bad gateway</html>") for _ in range(4)])
    client = _client(recorder)
    with pytest.raises(ApiError, match="API request failed"):
        await client.send("hi")


@pytest.mark.asyncio
async def test_network_failure_is_retried() -> None:
    attempts: list[int] = []

    def flaky(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return _reply("back online")

    client = _client(flaky)
    assert await client.send("hi") == "back online"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_missing_key_fails_without_request() -> None:
    recorder = Recorder()
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder), base_url=BASE_URL)
    client = InferenceClient(InferenceSettings(api_key=None), client=http)
    with pytest.raises(MissingCredential):
        await client.send("hi")
    assert recorder.requests == []
