"""Request and response schemas for conversation endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

# -- Requests --


class CreateConversationRequest(BaseModel):
    title: str | None = None
    system_prompt: str | None = None
    metadata: dict = Field(default_factory=dict)


class AddMessageRequest(BaseModel):
    text: str = Field(min_length=1)


class SwitchBranchRequest(BaseModel):
    node_id: str
    follow_latest: bool = False  # continue down to the newest leaf under node_id


# -- Responses --


class NodeResponse(BaseModel):
    node_id: str
    parent_id: str | None = None
    children_ids: list[str] = Field(default_factory=list)
    kind: str
    text: str
    model: str | None = None
    created_at: datetime
    branch_index: int = 0
    sibling_count: int = 1
    has_siblings: bool = False


class ConversationSummary(BaseModel):
    conversation_id: str
    title: str | None = None
    node_count: int = 0
    created_at: str
    updated_at: str


class GenerationFailureResponse(BaseModel):
    parent_node_id: str
    reason: str
    timestamp: datetime


class ConversationDetail(BaseModel):
    """A conversation as the chat view renders it: the active thread only."""

    conversation_id: str
    title: str | None = None
    system_prompt: str | None = None
    active_thread: list[str] = Field(default_factory=list)
    nodes: list[NodeResponse] = Field(default_factory=list)
    node_count: int = 0
