"""
Tests for the model catalogue, health checks and engine configuration.
"""

import asyncio

import httpx
import pydantic
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import create_db_engine
from main import create_app
from services.catalog import (
    FALLBACK_MODELS, ModelCatalog, format_model_name, get_model_metadata, list_models, transform_gateway_models
)
from tests.conftest import make_credentials

GATEWAY_URL = "https://gateway.example/api/v1/ai-gateway/providers"

GATEWAY_DOCUMENT = {
    "providers": {
        "openai": {"token_env_var": "OPENAI_API_KEY", "url_env_var": "OPENAI_BASE_URL", "models": ["gpt-5", "o3-mini"]},
        "anthropic": {"models": ["claude-sonnet-4-5-20250929"]},
        "gemini": {"models": ["gemini-2.5-pro"]},
        "mistral": {"models": ["mistral-large"]},
    }
}


def gateway_transport(calls, status_code=200, payload=GATEWAY_DOCUMENT):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestModelCatalogue:

    def test_metadata_uses_longest_pattern(self):
        assert get_model_metadata("gpt-4o-mini")["category"] == "fast"
        assert get_model_metadata("gpt-4o-2024-08-06")["category"] == "multimodal"
        assert get_model_metadata("gemini-2.5-pro-preview")["context_window"] == 1000000

    def test_metadata_default(self):
        metadata = get_model_metadata("gpt-3.5-turbo")
        assert metadata["description"] == "AI language model"
        assert metadata["context_window"] == 128000

    def test_format_model_name(self):
        assert format_model_name("gpt-4o-mini") == "GPT 4O MINI"
        assert format_model_name("claude-sonnet-4-5-20250929") == "Claude Sonnet 4 5"
        assert format_model_name("gemini-2.5-flash-latest") == "Gemini 2.5 flash"

    def test_list_models_flags_available_providers(self):
        models = list_models(make_credentials(openai="sk-test"))
        availability = {m.id: m.available for m in models}
        assert availability["gpt-4o-mini"] is True
        assert availability["claude-3-5-haiku-20241022"] is False
        assert availability["gemini-2.5-flash"] is False

    def test_list_models_adds_extra_ids_once(self):
        models = list_models(make_credentials(), extra_model_ids=["o3-mini", "gpt-4o-mini", "unknown-model"])
        ids = [m.id for m in models]
        assert ids.count("o3-mini") == 1
        assert ids.count("gpt-4o-mini") == 1
        assert "unknown-model" not in ids


class TestGatewayDiscovery:

    def test_transform_maps_gemini_to_google(self):
        entries = transform_gateway_models(GATEWAY_DOCUMENT)
        assert [(e["id"], e["provider"]) for e in entries] == [
            ("gpt-5", "openai"),
            ("o3-mini", "openai"),
            ("claude-sonnet-4-5-20250929", "anthropic"),
            ("gemini-2.5-pro", "google"),
        ]
        assert entries[2]["display_name"] == "Claude Sonnet 4 5"

    def test_transform_rejects_malformed_document(self):
        with pytest.raises(ValueError):
            transform_gateway_models({"models": []})
        with pytest.raises(ValueError):
            transform_gateway_models({"providers": {"openai": {"models": "gpt-5"}}})

    def test_fetched_list_is_cached(self):
        calls = []
        clock = FakeClock()
        catalog = ModelCatalog(GATEWAY_URL, cache_seconds=300, transport=gateway_transport(calls), clock=clock)

        entries, fallback, fetched_at = asyncio.run(catalog.get_entries())
        assert fallback is False
        assert fetched_at is not None
        assert len(entries) == 4

        clock.now += 299
        asyncio.run(catalog.get_entries())
        assert calls == [GATEWAY_URL]

        clock.now += 2
        asyncio.run(catalog.get_entries())
        assert len(calls) == 2

    def test_gateway_error_serves_fallback_uncached(self):
        calls = []
        catalog = ModelCatalog(GATEWAY_URL, transport=gateway_transport(calls, status_code=503), clock=FakeClock())

        entries, fallback, fetched_at = asyncio.run(catalog.get_entries())
        assert fallback is True
        assert fetched_at is None
        assert entries == FALLBACK_MODELS

        asyncio.run(catalog.get_entries())
        assert len(calls) == 2

    def test_unreachable_gateway_serves_fallback(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        catalog = ModelCatalog(GATEWAY_URL, transport=httpx.MockTransport(handler))
        entries, fallback, _ = asyncio.run(catalog.get_entries())
        assert fallback is True
        assert entries == FALLBACK_MODELS

    def test_empty_gateway_list_serves_fallback(self):
        catalog = ModelCatalog(GATEWAY_URL, transport=gateway_transport([], payload={"providers": {}}))
        _, fallback, _ = asyncio.run(catalog.get_entries())
        assert fallback is True

    def test_unconfigured_gateway_is_not_fetched(self):
        _, fallback, _ = asyncio.run(ModelCatalog(None).get_entries())
        assert fallback is True


class TestModelsEndpoint:

    def test_models_response(self, client):
        resp = client.get("/models")
        assert resp.status_code == 200
        body = resp.json()
        assert body["defaultModelId"] == "gpt-4o-mini"
        assert set(body["providers"]) == {"openai", "anthropic"}
        assert body["fallback"] is True
        assert body["fetchedAt"] is None

        first = body["models"][0]
        assert {"id", "provider", "displayName", "description", "contextWindow", "available"} <= set(first)

    def test_models_from_gateway(self, settings, registry, engine):
        calls = []
        catalog = ModelCatalog(GATEWAY_URL, transport=gateway_transport(calls))
        app = create_app(settings=settings, registry=registry, engine=engine, catalog=catalog)

        with TestClient(app) as client:
            body = client.get("/models").json()
            client.get("/models")

        assert len(calls) == 1
        assert body["fallback"] is False
        assert body["fetchedAt"]
        models = {m["id"]: m for m in body["models"]}
        assert set(models) == {"gpt-5", "o3-mini", "claude-sonnet-4-5-20250929", "gemini-2.5-pro", "gpt-4o-mini"}
        assert models["gemini-2.5-pro"]["provider"] == "google"
        assert models["gemini-2.5-pro"]["available"] is False
        assert models["gpt-5"]["available"] is True


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_detailed_health_reports_credentials_without_values(self, client):
        resp = client.get("/health/detailed")
        body = resp.json()
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["openai"]["status"] == "configured"
        assert body["checks"]["google"]["status"] == "not_configured"
        assert body["checks"]["google"]["api_key_var"] == "GEMINI_API_KEY"
        assert "sk-test" not in resp.text


class TestSettings:

    def test_history_window_must_include_the_current_turn(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None, memory_last_messages=0)

    def test_history_window_from_environment(self, monkeypatch):
        monkeypatch.setenv("MEMORY_LAST_MESSAGES", "4")
        assert Settings(_env_file=None).memory_last_messages == 4


class TestEngine:

    def test_sqlite_file_url(self, tmp_path):
        engine = create_db_engine(Settings(_env_file=None, database_url=f"sqlite:///{tmp_path}/chat.db"))
        try:
            assert engine.dialect.name == "sqlite"
        finally:
            engine.dispose()
