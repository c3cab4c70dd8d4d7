"""Shared pytest fixtures for branchchat tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from branchchat.conversation.router import get_conversation_service
from branchchat.conversation.service import ConversationService
from branchchat.db.connection import Database
from branchchat.events.projector import ConversationProjector
from branchchat.events.store import EventStore
from branchchat.main import app
from tests.fixtures import FakeGenerator


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def event_store(db):
    return EventStore(db)


@pytest.fixture
async def projector(db):
    return ConversationProjector(db)


@pytest.fixture
def generator():
    """One FakeGenerator shared by every conversation in a test."""
    return FakeGenerator()


@pytest.fixture
async def service(db, generator):
    return ConversationService(db, lambda system_prompt: generator)


@pytest.fixture
async def client(service):
    """Async test client with in-memory DB and FakeGenerator wired into the app."""
    app.dependency_overrides[get_conversation_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
