"""Response generation: the interface the conversation controller calls.

A ResponseGenerator receives the full root-to-tip history as turns and
returns one assistant reply. ProviderResponseGenerator adapts an
LLMProvider, separating system turns into the provider's system prompt.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from branchchat.models import GeneratedResponse, SamplingParams, Turn
from branchchat.providers.base import GenerationRequest, LLMProvider


class ResponseGenerator(ABC):
    """Produces the next assistant turn for a conversation history."""

    @abstractmethod
    async def generate(self, turns: Sequence[Turn]) -> GeneratedResponse:
        """Return the assistant reply to turns. Raise on failure."""
        ...


class UnavailableGenerator(ResponseGenerator):
    """Stands in when no provider is configured; every call fails with reason."""

    def __init__(self, reason: str) -> None:
        self._reason = reason

    async def generate(self, turns: Sequence[Turn]) -> GeneratedResponse:
        raise RuntimeError(self._reason)


def build_messages(
    turns: Sequence[Turn],
    system_prompt: str | None = None,
) -> tuple[str | None, list[dict[str, str]]]:
    """Split a history into (system prompt, chat messages).

    System turns are joined onto the configured system prompt, in order,
    rather than sent as messages. User and assistant turns keep their order.
    """
    system_parts = [system_prompt] if system_prompt else []
    messages: list[dict[str, str]] = []
    for turn in turns:
        if turn.kind == "system":
            system_parts.append(turn.text)
        else:
            messages.append({"role": turn.kind, "content": turn.text})
    resolved_system = "\n\n".join(system_parts) if system_parts else None
    return resolved_system, messages


class ProviderResponseGenerator(ResponseGenerator):
    """Generates replies through a configured LLM provider."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str | None = None,
        system_prompt: str | None = None,
        sampling_params: SamplingParams | None = None,
    ) -> None:
        self._provider = provider
        self._model = model or provider.default_model
        self._system_prompt = system_prompt
        self._sampling_params = sampling_params or SamplingParams()

    @property
    def provider_name(self) -> str:
        return self._provider.name

    @property
    def model(self) -> str:
        return self._model

    async def generate(self, turns: Sequence[Turn]) -> GeneratedResponse:
        if not turns:
            raise ValueError("Cannot generate a response to an empty history")
        system_prompt, messages = build_messages(turns, self._system_prompt)
        request = GenerationRequest(
            model=self._model,
            messages=messages,
            system_prompt=system_prompt,
            sampling_params=self._sampling_params,
        )
        result = await self._provider.generate(request)
        return GeneratedResponse(text=result.content, model=result.model)
