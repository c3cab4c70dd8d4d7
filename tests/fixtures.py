"""Shared test helpers: scripted generators, a fake provider, event builders."""

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from branchchat.conversation.controller import ConversationController
from branchchat.generation.generator import ResponseGenerator
from branchchat.models import (
    ActiveThreadChangedPayload,
    ConversationCreatedPayload,
    EventEnvelope,
    GeneratedResponse,
    NodeCreatedPayload,
    Turn,
    UserTurn,
)
from branchchat.providers.base import GenerationRequest, GenerationResult, LLMProvider
from branchchat.tree.store import NodeStore


class FakeGenerator(ResponseGenerator):
    """Test generator that returns canned replies.

    Replies are "Reply 1", "Reply 2", ... unless a script is given. A script
    entry that is an Exception is raised instead of returned. Every call's
    history is recorded in .calls.
    """

    def __init__(
        self,
        script: Sequence[str | Exception] | None = None,
        model: str = "fake-model",
    ) -> None:
        self._script = list(script or [])
        self._model = model
        self.calls: list[list[Turn]] = []

    async def generate(self, turns: Sequence[Turn]) -> GeneratedResponse:
        self.calls.append(list(turns))
        if self._script:
            item = self._script.pop(0)
            if isinstance(item, Exception):
                raise item
            return GeneratedResponse(text=item, model=self._model)
        return GeneratedResponse(text=f"Reply {len(self.calls)}", model=self._model)


class FakeProvider(LLMProvider):
    """Provider that records requests and echoes the requested model."""

    suggested_models = ["fake-default", "fake-other"]

    def __init__(self) -> None:
        self.requests: list[GenerationRequest] = []

    @property
    def name(self) -> str:
        return "fake"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        return GenerationResult(
            content="Fake response",
            model=request.model,
            finish_reason="end_turn",
        )


class GatedGenerator(ResponseGenerator):
    """Generator whose replies wait until the test releases them.

    release(text) unblocks the oldest pending call with that reply.
    """

    def __init__(self, model: str = "gated-model") -> None:
        self._model = model
        self._pending: list[asyncio.Future] = []
        self.started = asyncio.Event()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def generate(self, turns: Sequence[Turn]) -> GeneratedResponse:
        future = asyncio.get_running_loop().create_future()
        self._pending.append(future)
        self.started.set()
        text = await future
        return GeneratedResponse(text=text, model=self._model)

    def release(self, text: str, index: int = 0) -> None:
        self._pending.pop(index).set_result(text)


def make_controller(
    generator: ResponseGenerator | None = None,
    store: NodeStore | None = None,
) -> ConversationController:
    return ConversationController(store or NodeStore(), generator or FakeGenerator())


def make_conversation_created_envelope(
    conversation_id: str | None = None,
    title: str = "Test Conversation",
    system_prompt: str | None = "You are helpful.",
) -> EventEnvelope:
    payload = ConversationCreatedPayload(title=title, system_prompt=system_prompt)
    return _envelope(conversation_id or str(uuid4()), "ConversationCreated", payload)


def make_node_created_envelope(
    conversation_id: str,
    node_id: str | None = None,
    parent_id: str | None = None,
    turn: Turn | None = None,
) -> EventEnvelope:
    payload = NodeCreatedPayload(
        node_id=node_id or str(uuid4()),
        parent_id=parent_id,
        turn=turn or UserTurn(text="Hello"),
        created_at=datetime.now(UTC),
    )
    return _envelope(conversation_id, "NodeCreated", payload)


def make_thread_changed_envelope(
    conversation_id: str, thread: list[str]
) -> EventEnvelope:
    payload = ActiveThreadChangedPayload(thread=thread)
    return _envelope(conversation_id, "ActiveThreadChanged", payload)


def _envelope(conversation_id: str, event_type: str, payload: Any) -> EventEnvelope:
    return EventEnvelope(
        event_id=str(uuid4()),
        conversation_id=conversation_id,
        timestamp=datetime.now(UTC),
        device_id="test",
        event_type=event_type,
        payload=payload.model_dump(mode="json"),
    )
