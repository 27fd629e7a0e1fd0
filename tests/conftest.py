"""
Shared pytest fixtures.

Provides:
- An in-memory SQLite engine shared across connections
- A provider registry that hands out fake LangChain chat models
- A TestClient with the app lifespan running
"""

import json
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk
from langchain_core.outputs import ChatGenerationChunk
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from config import Settings, ProviderCredentials
from main import create_app
from services.providers import ModelBinding, ProviderRegistry


class FailingChatModel(GenericFakeChatModel):
    """Streams a couple of tokens, then fails like a provider hitting a rate limit."""

    def _stream(self, messages, stop=None, run_manager=None, **kwargs):
        for token in ["Partial", " reply"]:
            chunk = ChatGenerationChunk(message=AIMessageChunk(content=token))
            if run_manager:
                run_manager.on_llm_new_token(token, chunk=chunk)
            yield chunk
        raise RuntimeError("rate limit exceeded")


class FakeProviderRegistry(ProviderRegistry):
    """Registry that checks credentials like the real one but returns fake models."""

    def __init__(self, credentials: Dict[str, ProviderCredentials], reply: str = "Hello there, how can I help?"):
        super().__init__(credentials)
        self.reply = reply
        self.fail = False
        self.calls: List[dict] = []
        self.prompts: List[list] = []

    def chat_model(self, binding: ModelBinding, temperature: float, max_tokens: int):
        self.require_credentials(binding.family)
        self.calls.append({
            "model_id": binding.model_id,
            "family": binding.family,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.fail:
            return FailingChatModel(messages=iter([]))
        return RecordingChatModel(messages=iter([AIMessage(content=self.reply)]), sink=self.prompts)


class RecordingChatModel(GenericFakeChatModel):
    """Fake model that records the messages it was prompted with."""
    sink: Any = None

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        if self.sink is not None:
            self.sink.append(list(messages))
        return super()._generate(messages, stop=stop, run_manager=run_manager, **kwargs)


class GatedChatModel(GenericFakeChatModel):
    """Streams its tokens one at a time, waiting on a gate before every token after the first."""
    tokens: Any = ("one", " two", " three")
    gate: Any = None
    produced: Any = None

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        for i, token in enumerate(self.tokens):
            if i:
                await self.gate.wait()
            self.produced.append(token)
            yield ChatGenerationChunk(message=AIMessageChunk(content=token))


def make_credentials(**keys: Optional[str]) -> Dict[str, ProviderCredentials]:
    defaults = {
        "openai": ("OPENAI_API_KEY", "OPENAI_BASE_URL"),
        "anthropic": ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL"),
        "google": ("GEMINI_API_KEY", "GOOGLE_GEMINI_BASE_URL"),
    }
    return {
        family: ProviderCredentials(
            family=family,
            api_key_var=key_var,
            base_url_var=url_var,
            api_key=keys.get(family),
        )
        for family, (key_var, url_var) in defaults.items()
    }


def read_frames(response) -> List[dict]:
    """Parse a newline-delimited JSON chat stream."""
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        default_model_id="gpt-4o-mini",
        default_owner_id="default-user",
        memory_last_messages=10,
        models_gateway_url=None,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def registry() -> FakeProviderRegistry:
    return FakeProviderRegistry(make_credentials(openai="sk-test", anthropic="sk-ant-test"))


@pytest.fixture
def app(settings, registry, engine):
    return create_app(settings=settings, registry=registry, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(client):
    session = client.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def new_thread(client):
    """Start a conversation through the chat endpoint and return its id."""
    def _create(owner_id: Optional[str] = None, model_id: Optional[str] = None) -> str:
        body = {"newConversation": True}
        if owner_id:
            body["ownerId"] = owner_id
        if model_id:
            body["modelId"] = model_id
        response = client.post("/chat", json=body)
        assert response.status_code == 200
        return response.json()["threadId"]
    return _create
