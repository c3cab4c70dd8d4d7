"""Event sourcing: append-only event store and state projection."""

from branchchat.events.projector import ConversationProjector, ProjectedConversation
from branchchat.events.store import EventStore

__all__ = ["ConversationProjector", "EventStore", "ProjectedConversation"]
