"""Canonical data structures and event types for branchchat.

Defined once here, referenced everywhere else. A conversation is a tree of
immutable nodes; each node carries exactly one turn. Event payloads are the
type-specific content of each journaled event; the EventEnvelope wraps them
with metadata.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Turns: a tagged union, exactly one case per node
# ---------------------------------------------------------------------------


class SystemTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["system"] = "system"
    text: str


class UserTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    text: str


class AssistantTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assistant"] = "assistant"
    text: str
    model: str


Turn = Annotated[
    SystemTurn | UserTurn | AssistantTurn,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Tree records
# ---------------------------------------------------------------------------


class Node(BaseModel):
    """A single turn in the conversation tree. Never mutated after creation.

    children_ids is the only field that grows: the store swaps in a copy of
    the parent with the new child id appended.
    """

    model_config = ConfigDict(frozen=True)

    node_id: str
    parent_id: str | None = None
    children_ids: tuple[str, ...] = ()
    turn: Turn
    created_at: datetime

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class BranchInfo(BaseModel):
    """Branch-switcher metadata for one node, relative to its parent."""

    node_id: str
    branch_index: int
    sibling_count: int
    has_siblings: bool
    sibling_ids: list[str]


class BranchPreview(BaseModel):
    node_id: str
    index: int
    is_current: bool
    text_preview: str
    reply_preview: str | None = None


class GeneratedResponse(BaseModel):
    """What a response generator hands back for one assistant turn."""

    text: str
    model: str


class SamplingParams(BaseModel):
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int = 2048
    stop_sequences: list[str] | None = None


# ---------------------------------------------------------------------------
# Event payloads: one per event type
# ---------------------------------------------------------------------------


class ConversationCreatedPayload(BaseModel):
    title: str | None = None
    system_prompt: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NodeCreatedPayload(BaseModel):
    node_id: str
    parent_id: str | None = None
    turn: Turn
    created_at: datetime


class ActiveThreadChangedPayload(BaseModel):
    thread: list[str]


class GenerationFailedPayload(BaseModel):
    parent_node_id: str
    reason: str


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

EVENT_TYPES: dict[str, type[BaseModel]] = {
    "ConversationCreated": ConversationCreatedPayload,
    "NodeCreated": NodeCreatedPayload,
    "ActiveThreadChanged": ActiveThreadChangedPayload,
    "GenerationFailed": GenerationFailedPayload,
}


# ---------------------------------------------------------------------------
# Event envelope
# ---------------------------------------------------------------------------


class EventEnvelope(BaseModel):
    """Wraps every event with metadata. Stored in the events table."""

    event_id: str
    conversation_id: str
    timestamp: datetime
    device_id: str = "local"
    event_type: str
    payload: dict[str, Any]
    sequence_num: int | None = None  # assigned by DB on insert

    def typed_payload(self) -> BaseModel:
        """Deserialize payload into the correct Pydantic model based on event_type."""
        payload_cls = EVENT_TYPES[self.event_type]
        return payload_cls.model_validate(self.payload)
