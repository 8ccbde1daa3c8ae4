"""Anthropic Messages API provider (non-streaming, tools enabled).

The SDK client is created lazily on first use so a missing API key only
fails the request that needs the model, not process start-up. SDK retries are
disabled; retry policy belongs to the caller.
"""
from __future__ import annotations

import logging
from typing import Any

import anthropic

from chatcore import metrics

from .exceptions import ProviderConfigError, ProviderError, ProviderTimeoutError
from .provider import ModelInfo, ModelProvider
from .types import ModelRequest, ModelResponse, TokenUsage, block_from_wire

logger = logging.getLogger("chatdesk.llm.anthropic")


class AnthropicProvider(ModelProvider):
    def __init__(
        self,
        api_key: str | None,
        *,
        default_model: str,
        timeout_s: float = 60.0,
        api_key_env: str = "ANTHROPIC_API_KEY",
        client: Any | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._default_model = default_model
        self._timeout_s = timeout_s
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise ProviderConfigError(
                    f"{self._api_key_env} environment variable is not set"
                )
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                timeout=self._timeout_s,
                max_retries=0,
            )
        return self._client

    async def complete(self, request: ModelRequest) -> ModelResponse:
        client = self._get_client()
        payload = request.to_wire()
        with metrics.timed("llm_request_latency_ms", {"provider": "anthropic"}):
            try:
                resp = await client.messages.create(**payload)
            except anthropic.APITimeoutError as e:
                metrics.inc("llm_errors_total", {"kind": "timeout"})
                raise ProviderTimeoutError(f"model request timed out: {e}") from e
            except anthropic.AuthenticationError as e:
                metrics.inc("llm_errors_total", {"kind": "auth"})
                raise ProviderError(f"model authentication failed: {e}") from e
            except anthropic.APIError as e:
                metrics.inc("llm_errors_total", {"kind": e.__class__.__name__})
                raise ProviderError(f"model request failed: {e}") from e
        blocks = []
        for raw in resp.content:
            block = block_from_wire(raw.model_dump())
            if block is not None:
                blocks.append(block)
        usage = getattr(resp, "usage", None)
        logger.debug(
            "anthropic response model=%s stop=%s blocks=%d",
            resp.model,
            resp.stop_reason,
            len(blocks),
        )
        return ModelResponse(
            content=blocks,
            model=resp.model,
            stop_reason=resp.stop_reason,
            usage=TokenUsage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            )
            if usage is not None
            else None,
        )

    def info(self) -> ModelInfo:
        return ModelInfo(id=self._default_model, provider="anthropic")

    async def aclose(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
        self._client = None
