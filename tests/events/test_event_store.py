"""Contract tests for the EventStore.

test_event_roundtrip is the canary: if it fails, persistence is broken at
the root and nothing else is worth debugging first.
"""

import pytest

from branchchat.models import AssistantTurn, NodeCreatedPayload
from tests.fixtures import (
    make_conversation_created_envelope,
    make_node_created_envelope,
)


class TestEventStoreCanary:
    async def test_event_roundtrip(self, event_store):
        event = make_conversation_created_envelope(title="Canary Test")

        await event_store.append(event)
        events = await event_store.get_events(event.conversation_id)

        assert len(events) == 1
        assert events[0].event_type == "ConversationCreated"
        assert events[0].payload["title"] == "Canary Test"
        assert events[0].event_id == event.event_id

    async def test_node_turn_survives_roundtrip(self, event_store):
        created = make_conversation_created_envelope()
        node_event = make_node_created_envelope(
            created.conversation_id,
            turn=AssistantTurn(text="Hello", model="m-1"),
        )
        await event_store.append(created)
        await event_store.append(node_event)

        events = await event_store.get_events(created.conversation_id)
        payload = events[1].typed_payload()

        assert isinstance(payload, NodeCreatedPayload)
        assert payload.turn == AssistantTurn(text="Hello", model="m-1")


class TestEventStoreAppend:
    async def test_append_assigns_increasing_sequence_nums(self, event_store):
        first = make_conversation_created_envelope()
        second = make_node_created_envelope(first.conversation_id)
        seq1 = await event_store.append(first)
        seq2 = await event_store.append(second)
        assert 0 < seq1 < seq2

    async def test_append_duplicate_event_id_fails(self, event_store):
        event = make_conversation_created_envelope()
        await event_store.append(event)
        with pytest.raises(Exception):  # IntegrityError
            await event_store.append(event)

    async def test_events_are_scoped_to_conversation(self, event_store):
        a = make_conversation_created_envelope()
        b = make_conversation_created_envelope()
        await event_store.append(a)
        await event_store.append(b)
        events = await event_store.get_events(a.conversation_id)
        assert [e.event_id for e in events] == [a.event_id]

    async def test_get_events_by_type(self, event_store):
        created = make_conversation_created_envelope()
        await event_store.append(created)
        await event_store.append(make_node_created_envelope(created.conversation_id))
        nodes = await event_store.get_events_by_type(
            created.conversation_id, "NodeCreated"
        )
        assert len(nodes) == 1
        assert nodes[0].event_type == "NodeCreated"
