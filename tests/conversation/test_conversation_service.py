"""ConversationService journaling against the real event store."""

import pytest

from branchchat.conversation.schemas import CreateConversationRequest
from branchchat.conversation.service import ConversationService


class TestJournalRetry:
    async def test_projection_failure_does_not_duplicate_events(
        self, db, service, generator, event_store, projector
    ):
        conv = await service.create_conversation(CreateConversationRequest())
        cid = conv.conversation_id

        project = service._projector.project
        calls = []

        async def project_failing_once(events):
            calls.append(events)
            if len(calls) == 1:
                raise OSError("disk I/O error")
            await project(events)

        service._projector.project = project_failing_once

        with pytest.raises(OSError):
            await service.add_message(cid, "first")
        detail = await service.add_message(cid, "second")

        events = await event_store.get_events(cid)
        node_events = [e for e in events if e.event_type == "NodeCreated"]
        assert len(node_events) == 3
        assert len({e.payload["node_id"] for e in node_events}) == 3

        row = await projector.get_conversation(cid)
        assert row["node_count"] == 3

        reloaded = ConversationService(db, lambda system_prompt: generator)
        restored = await reloaded.get_conversation(cid)
        assert restored.active_thread == detail.active_thread
        assert restored.node_count == 3

    async def test_clear_thread_keeps_nodes(self, service):
        conv = await service.create_conversation(CreateConversationRequest())
        cid = conv.conversation_id
        await service.add_message(cid, "Hello")

        cleared = await service.clear_thread(cid)

        assert cleared.active_thread == []
        assert cleared.node_count == 2
        controller = await service.get_controller(cid)
        assert len(controller.store.roots()) == 1
