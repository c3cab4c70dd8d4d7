"""AnthropicProvider against a mocked AsyncAnthropic client."""

from unittest.mock import AsyncMock, MagicMock

from branchchat.models import SamplingParams
from branchchat.providers.anthropic import AnthropicProvider
from branchchat.providers.base import GenerationRequest


def _make_mock_message(
    blocks: list[tuple[str, str]] | None = None,
    model: str = "claude-sonnet-4-5-20250929",
    stop_reason: str = "end_turn",
) -> MagicMock:
    """Mock Message whose content is the given (type, text) blocks."""
    content = []
    for block_type, text in blocks or [("text", "Hello!")]:
        block = MagicMock()
        block.type = block_type
        block.text = text
        content.append(block)

    message = MagicMock()
    message.content = content
    message.model = model
    message.stop_reason = stop_reason
    message.usage.input_tokens = 12
    message.usage.output_tokens = 4
    message.model_dump.return_value = {"id": "msg_test"}
    return message


def _make_mock_client(message: MagicMock | None = None) -> AsyncMock:
    client = AsyncMock()
    client.messages.create = AsyncMock(return_value=message or _make_mock_message())
    return client


def _request(**kwargs) -> GenerationRequest:
    kwargs.setdefault("messages", [{"role": "user", "content": "Hi"}])
    return GenerationRequest(model="claude-sonnet-4-5-20250929", **kwargs)


class TestAnthropicGenerate:
    async def test_name_and_default_model(self):
        provider = AnthropicProvider(_make_mock_client())
        assert provider.name == "anthropic"
        assert provider.default_model == "claude-sonnet-4-5-20250929"

    async def test_returns_content_model_and_usage(self):
        message = _make_mock_message(model="claude-opus-4-6")
        provider = AnthropicProvider(_make_mock_client(message))

        result = await provider.generate(_request())

        assert result.content == "Hello!"
        assert result.model == "claude-opus-4-6"
        assert result.finish_reason == "end_turn"
        assert result.usage == {"input_tokens": 12, "output_tokens": 4}
        assert result.latency_ms is not None and result.latency_ms >= 0

    async def test_joins_text_blocks_and_skips_others(self):
        message = _make_mock_message(
            [("thinking", "hmm"), ("text", "Hel"), ("text", "lo")]
        )
        provider = AnthropicProvider(_make_mock_client(message))
        result = await provider.generate(_request())
        assert result.content == "Hello"

    async def test_system_prompt_sent_as_system_param(self):
        client = _make_mock_client()
        await AnthropicProvider(client).generate(_request(system_prompt="Be brief."))
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be brief."
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    async def test_unset_sampling_params_omitted(self):
        client = _make_mock_client()
        await AnthropicProvider(client).generate(_request())
        kwargs = client.messages.create.call_args.kwargs
        assert "system" not in kwargs
        assert "temperature" not in kwargs
        assert "stop_sequences" not in kwargs
        assert kwargs["max_tokens"] == 2048

    async def test_sampling_params_passed_through(self):
        client = _make_mock_client()
        params = SamplingParams(
            temperature=0.3, top_p=0.9, top_k=40, max_tokens=256, stop_sequences=["\n\n"]
        )
        await AnthropicProvider(client).generate(_request(sampling_params=params))
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["top_p"] == 0.9
        assert kwargs["top_k"] == 40
        assert kwargs["max_tokens"] == 256
        assert kwargs["stop_sequences"] == ["\n\n"]
