"""State projector: turns the event log back into live conversation state.

Two read models are maintained. The conversations table holds one summary
row per conversation for listing. replay() rebuilds a conversation's node
store and active thread in memory, re-checking the tree invariants as it
goes, so a corrupted log fails loudly instead of loading a broken tree.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from branchchat.db.connection import Database
from branchchat.models import (
    ActiveThreadChangedPayload,
    ConversationCreatedPayload,
    EventEnvelope,
    Node,
    NodeCreatedPayload,
)
from branchchat.tree import navigator
from branchchat.tree.store import NodeStore

logger = logging.getLogger(__name__)


@dataclass
class ProjectedConversation:
    conversation_id: str
    title: str | None = None
    system_prompt: str | None = None
    store: NodeStore = field(default_factory=NodeStore)
    active_thread: list[str] = field(default_factory=list)


class ConversationProjector:
    """Projects events into the conversations table and in-memory trees."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._handlers: dict[str, Callable[[EventEnvelope], Awaitable[None]]] = {
            "ConversationCreated": self._handle_conversation_created,
            "NodeCreated": self._handle_node_created,
        }

    async def project(self, events: list[EventEnvelope]) -> None:
        """Project a batch of events into materialized tables."""
        for event in events:
            handler = self._handlers.get(event.event_type)
            if handler:
                await handler(event)

    async def get_conversation(self, conversation_id: str) -> dict | None:
        """Read the projected summary row. Returns None if not found."""
        row = await self._db.fetchone(
            "SELECT * FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        )
        if row is None:
            return None
        return dict(row)

    async def list_conversations(self) -> list[dict]:
        rows = await self._db.fetchall(
            "SELECT * FROM conversations ORDER BY created_at DESC"
        )
        return [dict(row) for row in rows]

    @staticmethod
    def replay(
        conversation_id: str, events: list[EventEnvelope]
    ) -> ProjectedConversation:
        """Rebuild a conversation from its events, oldest first.

        Raises OrphanParentError, DuplicateNodeError or InvalidThreadError
        if the log describes a tree that violates the invariants.
        """
        projected = ProjectedConversation(conversation_id=conversation_id)
        for event in events:
            if event.event_type == "ConversationCreated":
                created = ConversationCreatedPayload.model_validate(event.payload)
                projected.title = created.title
                projected.system_prompt = created.system_prompt
            elif event.event_type == "NodeCreated":
                payload = NodeCreatedPayload.model_validate(event.payload)
                projected.store.restore_node(
                    Node(
                        node_id=payload.node_id,
                        parent_id=payload.parent_id,
                        turn=payload.turn,
                        created_at=payload.created_at,
                    )
                )
            elif event.event_type == "ActiveThreadChanged":
                changed = ActiveThreadChangedPayload.model_validate(event.payload)
                projected.active_thread = navigator.ensure_valid_thread(
                    projected.store, changed.thread
                )
            elif event.event_type != "GenerationFailed":
                logger.warning(
                    "Replay of %s: unknown event type %r, skipping",
                    conversation_id,
                    event.event_type,
                )
        return projected

    async def _handle_conversation_created(self, event: EventEnvelope) -> None:
        payload = ConversationCreatedPayload.model_validate(event.payload)
        timestamp = event.timestamp.isoformat()
        await self._db.execute(
            """
            INSERT OR REPLACE INTO conversations
                (conversation_id, title, system_prompt, metadata, node_count,
                 created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, ?, ?)
            """,
            (
                event.conversation_id,
                payload.title,
                payload.system_prompt,
                json.dumps(payload.metadata),
                timestamp,
                timestamp,
            ),
        )

    async def _handle_node_created(self, event: EventEnvelope) -> None:
        await self._db.execute(
            "UPDATE conversations SET node_count = node_count + 1, updated_at = ? "
            "WHERE conversation_id = ?",
            (event.timestamp.isoformat(), event.conversation_id),
        )
