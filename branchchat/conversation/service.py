"""Conversation service: owns one controller per open conversation.

Controllers are built on first use by replaying the conversation's events,
then cached. Every mutation a controller makes is journaled back to the
event store through the journal callback wired in here.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel

from branchchat.conversation.controller import ConversationController, EventJournal
from branchchat.conversation.schemas import (
    ConversationDetail,
    ConversationSummary,
    CreateConversationRequest,
    GenerationFailureResponse,
    NodeResponse,
)
from branchchat.db.connection import Database
from branchchat.events.projector import ConversationProjector
from branchchat.events.store import EventStore
from branchchat.export.service import export_tree, render_markdown
from branchchat.generation.generator import ResponseGenerator
from branchchat.models import (
    BranchPreview,
    ConversationCreatedPayload,
    EventEnvelope,
    GenerationFailedPayload,
    Node,
)
from branchchat.tree import navigator

logger = logging.getLogger(__name__)

# Builds the generator for a conversation, given its system prompt.
GeneratorFactory = Callable[[str | None], ResponseGenerator]


class ConversationService:
    """Coordinates event store, projector and controllers for conversations."""

    def __init__(self, db: Database, generator_factory: GeneratorFactory) -> None:
        self._store = EventStore(db)
        self._projector = ConversationProjector(db)
        self._generator_factory = generator_factory
        self._controllers: dict[str, ConversationController] = {}
        self._titles: dict[str, str | None] = {}
        self._system_prompts: dict[str, str | None] = {}

    async def create_conversation(
        self, request: CreateConversationRequest
    ) -> ConversationDetail:
        """Start an empty conversation. Emits ConversationCreated."""
        conversation_id = str(uuid4())
        payload = ConversationCreatedPayload(
            title=request.title,
            system_prompt=request.system_prompt,
            metadata=request.metadata,
        )
        await self._append(conversation_id, "ConversationCreated", payload)
        controller = await self.get_controller(conversation_id)
        return self._detail(conversation_id, controller)

    async def list_conversations(self) -> list[ConversationSummary]:
        rows = await self._projector.list_conversations()
        return [
            ConversationSummary(
                conversation_id=row["conversation_id"],
                title=row["title"],
                node_count=row["node_count"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    async def get_controller(self, conversation_id: str) -> ConversationController:
        """Return the live controller, rebuilding it from events if needed.

        Raises ConversationNotFoundError for an unknown id.
        """
        controller = self._controllers.get(conversation_id)
        if controller is not None:
            return controller

        events = await self._store.get_events(conversation_id)
        if not events:
            raise ConversationNotFoundError(conversation_id)
        # Another request may have finished loading while we awaited.
        if conversation_id in self._controllers:
            return self._controllers[conversation_id]
        projected = self._projector.replay(conversation_id, events)
        logger.debug(
            "Loaded conversation %s: %d nodes", conversation_id, len(projected.store)
        )

        controller = ConversationController(
            projected.store,
            self._generator_factory(projected.system_prompt),
            active_thread=projected.active_thread,
            journal=self._journal_for(conversation_id),
        )
        self._controllers[conversation_id] = controller
        self._titles[conversation_id] = projected.title
        self._system_prompts[conversation_id] = projected.system_prompt
        return controller

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        controller = await self.get_controller(conversation_id)
        return self._detail(conversation_id, controller)

    async def add_message(self, conversation_id: str, text: str) -> ConversationDetail:
        controller = await self.get_controller(conversation_id)
        await controller.add_message(text)
        return self._detail(conversation_id, controller)

    async def regenerate(
        self, conversation_id: str, node_id: str
    ) -> ConversationDetail:
        controller = await self.get_controller(conversation_id)
        await controller.regenerate_response(node_id)
        return self._detail(conversation_id, controller)

    async def switch_branch(
        self, conversation_id: str, node_id: str, *, follow_latest: bool = False
    ) -> ConversationDetail:
        controller = await self.get_controller(conversation_id)
        if follow_latest:
            node_id = navigator.latest_leaf(controller.store, node_id)
        await controller.switch_branch(node_id)
        return self._detail(conversation_id, controller)

    async def clear_thread(self, conversation_id: str) -> ConversationDetail:
        """Empty the active thread; the next message starts a new root.

        Every existing node is kept and stays reachable through switch_branch.
        """
        controller = await self.get_controller(conversation_id)
        await controller.set_active_thread([])
        return self._detail(conversation_id, controller)

    async def generation_failures(
        self, conversation_id: str
    ) -> list[GenerationFailureResponse]:
        """Failed and cancelled generations, oldest first."""
        await self.get_controller(conversation_id)
        events = await self._store.get_events_by_type(
            conversation_id, "GenerationFailed"
        )
        failures = []
        for event in events:
            payload = GenerationFailedPayload.model_validate(event.payload)
            failures.append(
                GenerationFailureResponse(
                    parent_node_id=payload.parent_node_id,
                    reason=payload.reason,
                    timestamp=event.timestamp,
                )
            )
        return failures

    async def branch_previews(
        self, conversation_id: str, node_id: str
    ) -> list[BranchPreview]:
        controller = await self.get_controller(conversation_id)
        return controller.branch_previews(node_id)

    async def export_markdown(self, conversation_id: str) -> str:
        controller = await self.get_controller(conversation_id)
        return render_markdown(
            self._titles.get(conversation_id), controller.active_thread_nodes()
        )

    async def export_json(self, conversation_id: str) -> dict:
        controller = await self.get_controller(conversation_id)
        return export_tree(
            conversation_id,
            self._titles.get(conversation_id),
            controller.store,
            controller.active_thread,
        )

    def _journal_for(self, conversation_id: str) -> EventJournal:
        # Holds an event that reached the store but not the projector. The
        # controller retries the same event, so it must not be appended twice.
        unprojected: list[EventEnvelope] = []

        async def journal(event_type: str, payload: BaseModel) -> None:
            if not unprojected:
                event = self._envelope(conversation_id, event_type, payload)
                await self._store.append(event)
                unprojected.append(event)
            await self._projector.project(unprojected)
            unprojected.clear()

        return journal

    async def _append(
        self, conversation_id: str, event_type: str, payload: BaseModel
    ) -> None:
        event = self._envelope(conversation_id, event_type, payload)
        await self._store.append(event)
        await self._projector.project([event])

    @staticmethod
    def _envelope(
        conversation_id: str, event_type: str, payload: BaseModel
    ) -> EventEnvelope:
        return EventEnvelope(
            event_id=str(uuid4()),
            conversation_id=conversation_id,
            timestamp=datetime.now(UTC),
            device_id="local",
            event_type=event_type,
            payload=payload.model_dump(mode="json"),
        )

    def _detail(
        self, conversation_id: str, controller: ConversationController
    ) -> ConversationDetail:
        return ConversationDetail(
            conversation_id=conversation_id,
            title=self._titles.get(conversation_id),
            system_prompt=self._system_prompts.get(conversation_id),
            active_thread=controller.active_thread,
            nodes=[
                self._node_response(controller, node)
                for node in controller.active_thread_nodes()
            ],
            node_count=len(controller.store),
        )

    @staticmethod
    def _node_response(controller: ConversationController, node: Node) -> NodeResponse:
        info = navigator.branch_info(controller.store, node.node_id)
        return NodeResponse(
            node_id=node.node_id,
            parent_id=node.parent_id,
            children_ids=list(node.children_ids),
            kind=node.turn.kind,
            text=node.turn.text,
            model=getattr(node.turn, "model", None),
            created_at=node.created_at,
            branch_index=info.branch_index,
            sibling_count=info.sibling_count,
            has_siblings=info.has_siblings,
        )


class ConversationNotFoundError(Exception):
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")
