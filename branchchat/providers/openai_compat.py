"""Shared base class for OpenAI-compatible LLM providers.

Handles parameter building and response parsing. OpenAIProvider is a thin
subclass that only supplies client configuration.
"""

import time
from typing import Any

from openai import AsyncOpenAI

from branchchat.providers.base import GenerationRequest, GenerationResult, LLMProvider


class OpenAICompatibleProvider(LLMProvider):
    """Base provider for any API that speaks the OpenAI chat completions protocol."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        params = self._build_params(request)
        start = time.monotonic()
        response = await self._client.chat.completions.create(**params)
        latency_ms = int((time.monotonic() - start) * 1000)

        choice = response.choices[0]
        usage = None
        if response.usage is not None:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }

        return GenerationResult(
            content=choice.message.content or "",
            model=response.model,
            finish_reason=choice.finish_reason,
            usage=usage,
            latency_ms=latency_ms,
            raw_response=response.model_dump(),
        )

    @staticmethod
    def _build_params(request: GenerationRequest) -> dict[str, Any]:
        """Build kwargs dict for client.chat.completions.create()."""
        sp = request.sampling_params
        messages: list[dict[str, str]] = []

        # System prompt goes first, as a system message
        if request.system_prompt is not None:
            messages.append({"role": "system", "content": request.system_prompt})

        messages.extend(
            {"role": m["role"], "content": m["content"]} for m in request.messages
        )

        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": sp.max_tokens,
            "messages": messages,
        }

        if sp.temperature is not None:
            params["temperature"] = sp.temperature
        if sp.top_p is not None:
            params["top_p"] = sp.top_p
        # top_k has no OpenAI equivalent; dropped
        if sp.stop_sequences:
            params["stop"] = sp.stop_sequences

        return params
