"""
LLM HTTP client for OpenAI-compatible chat completion APIs.

One pooled httpx client is shared by every request. Callers choose a sampling
profile per call: the agent streams with tools bound, the status narrator and
title generator use one-shot completions.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncGenerator
from typing import Any, cast

import httpx

from garimpo.chat.logging_utils import should_log_feature
from garimpo.chat.models import ChatCompletionMessage, ToolDefinition, to_api_format
from garimpo.config import Configuration

logger = logging.getLogger(__name__)

HTTP_OK = 200


class LLMError(Exception):
    """Raised when the model provider fails or returns an unusable response."""


class LLMClient:
    """Pooled HTTP client for the active LLM provider."""

    def __init__(
        self,
        configuration: Configuration,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.configuration = configuration
        self._config = configuration.get_llm_config()
        self._provider = self._detect_provider(self._config.get("base_url", ""))
        pool_config = configuration.get_connection_pool_config()

        self.client: httpx.AsyncClient | None = httpx.AsyncClient(
            base_url=self._config["base_url"],
            headers={
                "Authorization": f"Bearer {configuration.llm_api_key}",
                "Content-Type": "application/json",
            },
            timeout=pool_config["request_timeout_seconds"],
            http2=transport is None,
            limits=httpx.Limits(
                max_connections=pool_config["max_connections"],
                max_keepalive_connections=pool_config["max_keepalive_connections"],
                keepalive_expiry=pool_config["keepalive_expiry_seconds"],
            ),
            transport=transport,
            trust_env=False,
        )
        logger.info("LLM client initialized with provider: %s", self._provider)
        logger.info("Model: %s", self._config.get("model", "unknown"))

    @property
    def config(self) -> dict[str, Any]:
        """Active provider configuration."""
        return self._config

    @property
    def provider(self) -> str:
        return self._provider

    def _detect_provider(self, base_url: str) -> str:
        """Detect provider from base URL."""
        if "openrouter" in base_url:
            return "openrouter"
        if "groq" in base_url:
            return "groq"
        if "openai" in base_url:
            return "openai"
        return "unknown"

    def profile(self, name: str) -> dict[str, Any]:
        """Sampling parameters for a configured profile (agent, narrator, title)."""
        return self.configuration.get_llm_profile(name)

    def _build_payload(
        self,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition] | None,
        params: dict[str, Any] | None,
        stream: bool,
    ) -> dict[str, Any]:
        """Build the request body; provider settings other than routing pass through."""
        payload: dict[str, Any] = {
            "model": self._config["model"],
            "messages": to_api_format(messages),
            "stream": stream,
        }

        excluded_keys = {"base_url", "model"}
        for key, value in self._config.items():
            if key not in excluded_keys and value is not None:
                payload[key] = value

        for key, value in (params or {}).items():
            if value is not None:
                payload[key] = value

        if tools:
            payload["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        return payload

    def _log_http_request(self, status_code: int, duration_ms: float) -> None:
        if should_log_feature("clients", "http_requests"):
            logger.info(
                "HTTP POST /chat/completions | Status: %d | Duration: %.2fms",
                status_code,
                duration_ms,
            )

    async def complete(
        self,
        messages: list[ChatCompletionMessage],
        params: dict[str, Any] | None = None,
    ) -> str:
        """
        Get a single, non-streamed text completion with no tools bound.

        Raises:
            LLMError: On transport errors, non-200 responses or a response
                without choices.
        """
        if not self.client:
            raise LLMError("LLM client not initialized")

        payload = self._build_payload(messages, None, params, stream=False)
        try:
            start_time = time.monotonic()
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            result = response.json()
            self._log_http_request(response.status_code, (time.monotonic() - start_time) * 1000)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error: {e}")
            raise LLMError(f"HTTP error: {e!s}") from e
        except ValueError as e:
            raise LLMError(f"Invalid JSON in completion response: {e}") from e

        if not isinstance(result, dict):
            raise LLMError(f"Unexpected response body type: {type(result).__name__}")

        choices = result.get("choices")
        if not choices:
            raise LLMError("No choices in API response")

        try:
            return choices[0]["message"].get("content") or ""
        except (KeyError, TypeError, AttributeError) as e:
            raise LLMError(f"Unexpected response format: {e!s}") from e

    async def stream_chat(
        self,
        messages: list[ChatCompletionMessage],
        tools: list[ToolDefinition] | None = None,
        params: dict[str, Any] | None = None,
    ) -> AsyncGenerator[dict[str, Any]]:
        """
        Stream a chat completion, yielding raw chunk dicts that carry ``choices``.

        Raises:
            LLMError: On transport errors, non-200 responses, malformed stream
                lines or a stream with no chunks.
        """
        if not self.client:
            raise LLMError("LLM client not initialized")

        payload = self._build_payload(messages, tools, params, stream=True)

        try:
            async with self.client.stream(
                "POST",
                "/chat/completions",
                json=payload,
                headers={"Accept": "text/event-stream", "Accept-Encoding": "identity"},
            ) as response:
                # FAIL FAST: Ensure streaming response is valid
                if response.status_code != HTTP_OK:
                    error_text = await response.aread()
                    raise LLMError(
                        f"Streaming API error {response.status_code}: {error_text!r}"
                    )

                chunk_count = 0
                async for line in response.aiter_lines():
                    if not line.strip() or not line.startswith("data: "):
                        continue

                    data = line[6:]
                    if data.strip() == "[DONE]":
                        break

                    try:
                        chunk = cast(dict[str, Any], json.loads(data))
                    except json.JSONDecodeError as e:
                        raise LLMError(f"Invalid JSON in stream chunk: {e}") from e

                    chunk_count += 1
                    if isinstance(chunk, dict) and "choices" in chunk:
                        yield chunk

                # FAIL FAST: Ensure we got at least some data
                if chunk_count == 0:
                    raise LLMError("No streaming chunks received from API")

        except httpx.HTTPError as e:
            logger.error(f"HTTP error during streaming: {e}")
            logger.error(f"HTTP error type: {type(e).__name__}")
            raise LLMError(f"HTTP error: {e!s}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()
