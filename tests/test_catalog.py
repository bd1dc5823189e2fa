import time
from unittest.mock import patch, MagicMock

import httpx
import pytest

from email_to_ics.llm.catalog import (
    ALLOWED_MODEL_IDS,
    ModelCatalog,
    filter_allowed_models,
    get_model_catalog,
    reset_model_catalog,
)
from email_to_ics.utils.cache import TTLCache


def _models_response(models):
    response = MagicMock()
    response.json.return_value = {"data": models}
    response.raise_for_status.return_value = None
    return response


class TestTTLCache:

    def test_set_get_delete(self):
        cache = TTLCache(default_ttl_seconds=60)
        cache.set("k", [1, 2])
        assert cache.get("k") == [1, 2]
        assert cache.delete("k") is True
        assert cache.get("k") is None
        assert cache.delete("k") is False

    def test_expiry(self):
        cache = TTLCache(default_ttl_seconds=60)
        cache.set("k", "v", ttl_seconds=0.01)
        time.sleep(0.05)
        assert cache.get("k") is None

    def test_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert cache.get("a") is None


class TestFilterAllowedModels:

    def test_drops_unknown_and_sorts(self):
        models = [
            {"id": "google/gemini-3-flash-preview", "name": "Flash", "context_length": 1000000},
            {"id": "some/other-model", "name": "Other"},
            {"id": "openai/gpt-5.2", "name": "GPT"},
        ]
        result = filter_allowed_models(models)
        assert [m["id"] for m in result] == ALLOWED_MODEL_IDS
        # Provider metadata is kept for models it listed
        flash = next(m for m in result if m["id"] == "google/gemini-3-flash-preview")
        assert flash["context_length"] == 1000000

    def test_empty_provider_list_returns_offline_list(self):
        assert [m["id"] for m in filter_allowed_models([])] == ALLOWED_MODEL_IDS


class TestModelCatalog:
    """Test catalog fetch, caching and fallback."""

    def setup_method(self):
        reset_model_catalog()
        self.catalog = ModelCatalog(api_key="test-key", base_url="https://openrouter.ai/api/v1")

    @patch("httpx.Client")
    def test_fetch_and_cache(self, mock_client):
        mock_get = mock_client.return_value.__enter__.return_value.get
        mock_get.return_value = _models_response([{"id": "openai/gpt-5.2", "name": "GPT-5.2"}])

        first = self.catalog.list_models()
        second = self.catalog.list_models()

        assert [m["id"] for m in first] == ALLOWED_MODEL_IDS
        assert second == first
        mock_get.assert_called_once()
        assert mock_get.call_args[0][0] == "https://openrouter.ai/api/v1/models"
        assert mock_get.call_args[1]["headers"]["Authorization"] == "Bearer test-key"

    @patch("httpx.Client")
    def test_fetch_failure_returns_offline_list(self, mock_client):
        mock_client.return_value.__enter__.return_value.get.side_effect = httpx.ConnectError("down")

        models = self.catalog.list_models()

        assert [m["id"] for m in models] == ALLOWED_MODEL_IDS
        assert self.catalog.cache.get("models") is None

    @patch("httpx.Client")
    def test_error_status_returns_offline_list(self, mock_client):
        response = MagicMock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "500", request=MagicMock(), response=MagicMock()
        )
        mock_client.return_value.__enter__.return_value.get.return_value = response

        assert [m["id"] for m in self.catalog.list_models()] == ALLOWED_MODEL_IDS

    @patch("httpx.Client")
    def test_no_api_key_skips_fetch(self, mock_client):
        catalog = ModelCatalog(api_key=None)
        assert [m["id"] for m in catalog.list_models()] == ALLOWED_MODEL_IDS
        mock_client.assert_not_called()


def test_models_endpoint(monkeypatch):
    from fastapi.testclient import TestClient
    from email_to_ics.main import app

    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.setenv("AI_MODEL", "anthropic/claude-sonnet-4.5")
    reset_model_catalog()

    r = TestClient(app).get("/models")

    assert r.status_code == 200
    data = r.json()
    assert data["default_model"] == "anthropic/claude-sonnet-4.5"
    assert [m["id"] for m in data["models"]] == ALLOWED_MODEL_IDS
    reset_model_catalog()


class TestGetModelCatalog:

    def setup_method(self):
        reset_model_catalog()

    def teardown_method(self):
        reset_model_catalog()

    def test_reuses_catalog_for_same_settings(self):
        first = get_model_catalog("key-a", "https://openrouter.ai/api/v1")
        assert get_model_catalog("key-a", "https://openrouter.ai/api/v1") is first

    def test_rebuilds_when_settings_change(self):
        first = get_model_catalog(None, "https://openrouter.ai/api/v1")
        second = get_model_catalog("key-b", "https://openrouter.ai/api/v1")
        assert second is not first
        assert second.api_key == "key-b"

        third = get_model_catalog("key-b", "https://proxy.example.com/v1")
        assert third is not second
        assert third.base_url == "https://proxy.example.com/v1"
