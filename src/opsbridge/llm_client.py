"""Async client for an OpenAI-compatible chat completions endpoint.

Every call is bounded by the configured timeout and can be aborted through an
external asyncio.Event.
"""

from __future__ import annotations

import asyncio
import os
import random
from typing import Any

import httpx

from .config import LLMConfig
from .errors import GenerationCancelled, GenerationFailed


class LLMClient:
    """
    Async HTTP client with retry/backoff logic.

    Retry strategy:
    - 429 (rate limit), 500/502/503/504: exponential backoff with jitter
    - other 4xx: no retry
    - network errors and per-request timeouts: retry with backoff
    """

    def __init__(self, config: LLMConfig):
        self.config = config

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if key := self.config.api_key:
            headers["Authorization"] = f"Bearer {key}"
        return headers

    async def _post_with_retry(self, payload: dict[str, Any]) -> dict[str, Any]:
        retry_max = max(1, self.config.max_retries)
        last_error: Exception | None = None

        for attempt in range(retry_max):
            try:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    response = await client.post(
                        f"{self.config.base_url.rstrip('/')}/chat/completions",
                        json=payload,
                        headers=self._headers(),
                    )
            except (httpx.NetworkError, httpx.TimeoutException) as e:
                last_error = e
                if attempt < retry_max - 1:
                    await asyncio.sleep((2**attempt) * 0.5)
                    continue
                raise GenerationFailed(f"Network error after {retry_max} attempts: {e}") from e

            if response.status_code == 200:
                return response.json()

            if response.status_code in (429, 500, 502, 503, 504):
                last_error = GenerationFailed(f"HTTP {response.status_code}")
                if attempt < retry_max - 1:
                    sleep_time = (2**attempt) * 0.5
                    await asyncio.sleep(sleep_time + random.uniform(0, 0.1 * sleep_time))
                    continue
                break

            raise GenerationFailed(
                f"HTTP {response.status_code} from model endpoint: {response.text[:200]}"
            )

        raise GenerationFailed(f"Max retries ({retry_max}) exceeded: {last_error}")

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """
        Send a chat completion request and return the assistant's text.

        Args:
            messages: List of message dicts with "role" and "content"
            temperature: Sampling temperature (default: from config)
            cancel_event: Setting this event aborts the call with GenerationCancelled

        Raises:
            GenerationFailed: network/HTTP failure, timeout, or network disabled
            GenerationCancelled: the cancel event was set first
        """
        if os.getenv("OPSBRIDGE_DISABLE_NETWORK") == "1":
            raise GenerationFailed("Network disabled via OPSBRIDGE_DISABLE_NETWORK")
        if not self.config.api_key:
            raise GenerationFailed(f"{self.config.api_key_env} missing (required for model calls)")

        payload = {
            "model": self.config.model_id,
            "messages": messages,
            "temperature": self.config.temperature if temperature is None else temperature,
        }
        request = asyncio.ensure_future(
            asyncio.wait_for(self._post_with_retry(payload), timeout=self.config.timeout_seconds)
        )

        if cancel_event is None:
            data = await self._await_request(request)
        else:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            try:
                done, _ = await asyncio.wait({request, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancelled.cancel()
            if request not in done:
                request.cancel()
                raise GenerationCancelled("Model request cancelled")
            data = await self._await_request(request)

        try:
            return str(data["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationFailed("Unexpected response shape from model endpoint") from e

    async def _await_request(self, request: asyncio.Future[dict[str, Any]]) -> dict[str, Any]:
        try:
            return await request
        except asyncio.TimeoutError as e:
            raise GenerationFailed(
                f"Model request timed out after {self.config.timeout_seconds}s"
            ) from e
