"""Anthropic (Claude) LLM provider implementation."""

import time
from typing import Any

from anthropic import AsyncAnthropic

from branchchat.providers.base import GenerationRequest, GenerationResult, LLMProvider


class AnthropicProvider(LLMProvider):
    """LLM provider backed by Anthropic's Messages API."""

    suggested_models = [
        "claude-sonnet-4-5-20250929",
        "claude-opus-4-6",
        "claude-haiku-4-5-20251001",
    ]

    def __init__(self, client: AsyncAnthropic) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "anthropic"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        params = self._build_params(request)
        start = time.monotonic()
        response = await self._client.messages.create(**params)
        latency_ms = int((time.monotonic() - start) * 1000)

        return GenerationResult(
            content=self._extract_text(response),
            model=response.model,
            finish_reason=response.stop_reason,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            latency_ms=latency_ms,
            raw_response=response.model_dump(),
        )

    @staticmethod
    def _build_params(request: GenerationRequest) -> dict[str, Any]:
        """Build kwargs dict for client.messages.create()."""
        sp = request.sampling_params
        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": sp.max_tokens,
            "messages": [
                {"role": m["role"], "content": m["content"]} for m in request.messages
            ],
        }
        if request.system_prompt is not None:
            params["system"] = request.system_prompt
        if sp.temperature is not None:
            params["temperature"] = sp.temperature
        if sp.top_p is not None:
            params["top_p"] = sp.top_p
        if sp.top_k is not None:
            params["top_k"] = sp.top_k
        if sp.stop_sequences:
            params["stop_sequences"] = sp.stop_sequences
        return params

    @staticmethod
    def _extract_text(response: Any) -> str:
        """Extract text content from Anthropic Message response."""
        parts = []
        for block in response.content:
            if block.type == "text":
                parts.append(block.text)
        return "".join(parts)
