"""HTTP client for the remote language model."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..config.settings import InferenceSettings
from ..errors import ApiError, InferenceError, InferenceTimeout, InvalidResponse, MissingCredential

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class InferenceClient:
    """Async client for the Gemini ``generateContent`` endpoint.

    Every call is single-turn: only the utterance is sent, never the
    conversation window. Each attempt is bounded by ``timeout_s``; a timeout
    is final, while upstream and network failures are retried up to
    ``max_retries`` times after a fixed ``retry_delay_s`` wait.
    """

    def __init__(
        self,
        settings: InferenceSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(settings.timeout_s),
        )
        self._sleep = sleep
        self._attempts = 0

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def send(self, utterance: str) -> str:
        """Return the assistant text for ``utterance`` or raise an InferenceError."""
        if not self.settings.api_key:
            raise MissingCredential("API key not configured.")

        body = self.build_request(utterance)
        retries = 0
        while True:
            self._attempts += 1
            try:
                return await self._attempt(body)
            except InferenceTimeout:
                LOGGER.warning("Inference timed out after %.1fs, not retrying.", self.settings.timeout_s)
                raise
            except InferenceError as exc:
                if not exc.retryable or retries >= self.settings.max_retries:
                    LOGGER.error("Inference failed after %d attempt(s): %s", retries + 1, exc)
                    raise
                retries += 1
                LOGGER.info("Retrying (%d/%d) after error: %s", retries, self.settings.max_retries, exc)
                await self._sleep(self.settings.retry_delay_s)

    def build_request(self, utterance: str) -> dict[str, Any]:
        """Request body: the utterance plus the fixed generation config."""
        return {
            "contents": [{"parts": [{"text": utterance}]}],
            "generationConfig": {
                "temperature": self.settings.temperature,
                "maxOutputTokens": self.settings.max_output_tokens,
                "topP": self.settings.top_p,
                "topK": self.settings.top_k,
            },
        }

    @property
    def attempts(self) -> int:
        """Total HTTP attempts made by this client."""
        return self._attempts

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "InferenceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _attempt(self, body: dict[str, Any]) -> str:
        path = f"models/{self.settings.model}:generateContent"
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    path,
                    params={"key": self.settings.api_key},
                    json=body,
                    headers={"Content-Type": "application/json"},
                ),
                timeout=self.settings.timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise InferenceTimeout("Request timed out.") from exc
        except httpx.TransportError as exc:
            raise ApiError(f"Network error: {exc}") from exc

        if not response.is_success:
            raise ApiError(self._error_message(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            snippet = response.text[:200]
            raise InvalidResponse(f"Non-JSON response: {snippet}") from exc
        text = self.extract_text(data)
        if not text:
            raise InvalidResponse("Empty response from API")
        return text

    @staticmethod
    def extract_text(data: Any) -> str:
        """Pull ``candidates[0].content.parts[0].text`` out of a payload."""
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""
        return text.strip() if isinstance(text, str) else ""

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return "API request failed"
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return "API request failed"
