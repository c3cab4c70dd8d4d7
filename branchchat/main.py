"""branchchat FastAPI application entry point."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from anthropic import AsyncAnthropic
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from branchchat.conversation.router import get_conversation_service
from branchchat.conversation.router import router as conversations_router
from branchchat.conversation.service import ConversationService, GeneratorFactory
from branchchat.db.connection import Database
from branchchat.generation.generator import (
    ProviderResponseGenerator,
    ResponseGenerator,
    UnavailableGenerator,
)
from branchchat.providers.anthropic import AnthropicProvider
from branchchat.providers.openai import OpenAIProvider
from branchchat.providers.registry import ProviderNotFoundError, ProviderRegistry


def build_provider_registry() -> ProviderRegistry:
    """Register every provider whose API key is present in the environment."""
    registry = ProviderRegistry()
    if os.environ.get("ANTHROPIC_API_KEY"):
        registry.register(AnthropicProvider(AsyncAnthropic()))
    if os.environ.get("OPENAI_API_KEY"):
        registry.register(OpenAIProvider(api_key=os.environ["OPENAI_API_KEY"]))
    return registry


def make_generator_factory(
    registry: ProviderRegistry,
    provider_name: str,
    model: str | None = None,
) -> GeneratorFactory:
    def factory(system_prompt: str | None) -> ResponseGenerator:
        try:
            provider = registry.get(provider_name)
        except ProviderNotFoundError as e:
            return UnavailableGenerator(str(e))
        return ProviderResponseGenerator(
            provider, model=model, system_prompt=system_prompt
        )

    return factory


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    # Load .env from the project directory (secrets stay out of shell profile)
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

    db = await Database.connect(os.environ.get("BRANCHCHAT_DB_PATH", "branchchat.db"))

    registry = build_provider_registry()
    factory = make_generator_factory(
        registry,
        os.environ.get("BRANCHCHAT_DEFAULT_PROVIDER", "anthropic"),
        os.environ.get("BRANCHCHAT_DEFAULT_MODEL") or None,
    )

    service = ConversationService(db, factory)
    app.dependency_overrides[get_conversation_service] = lambda: service

    app.state.db = db
    app.state.providers = registry
    yield

    await db.close()


app = FastAPI(
    title="branchchat",
    description="Branching AI chat: regenerate, resend and revisit any turn",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(conversations_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}


@app.get("/api/providers")
async def providers(request: Request) -> list[dict]:
    registry: ProviderRegistry = getattr(request.app.state, "providers", ProviderRegistry())
    return [
        {"name": p.name, "available": True, "models": p.suggested_models}
        for p in registry.all()
    ]
