"""
Catalog of AI models offered to the host for the per-request model override.

Lives outside the pipeline: the list is fetched from OpenRouter, filtered
to an allow-list, and cached for 15 minutes. Any fetch problem falls back
to the offline allow-list so the host always has something to show.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from email_to_ics.utils.cache import TTLCache

logger = logging.getLogger(__name__)

CACHE_KEY = "models"
CACHE_TTL_SECONDS = 15 * 60

ALLOWED_MODELS: List[Dict[str, str]] = [
    {"id": "openai/gpt-5.2", "name": "GPT-5.2"},
    {"id": "openai/gpt-5.2-codex", "name": "GPT-5.2 Codex"},
    {"id": "anthropic/claude-opus-4.6", "name": "Claude Opus 4.6"},
    {"id": "anthropic/claude-sonnet-4.5", "name": "Claude Sonnet 4.5"},
    {"id": "google/gemini-3-pro-preview", "name": "Gemini 3 Pro"},
    {"id": "google/gemini-3-flash-preview", "name": "Gemini 3 Flash"},
]

ALLOWED_MODEL_IDS = [m["id"] for m in ALLOWED_MODELS]

# Same as the allow-list today; kept separate so ordering can change without touching it
PREFERRED_ORDER = list(ALLOWED_MODEL_IDS)


def filter_allowed_models(all_models: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep allowed models, fill in any the provider did not list, sort by preference."""
    filtered = [m for m in all_models if m.get("id") in ALLOWED_MODEL_IDS]
    found = {m["id"] for m in filtered}
    filtered.extend(dict(m) for m in ALLOWED_MODELS if m["id"] not in found)

    def rank(model: Dict[str, Any]) -> int:
        try:
            return PREFERRED_ORDER.index(model["id"])
        except ValueError:
            return 999

    return sorted(filtered, key=rank)


class ModelCatalog:

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://openrouter.ai/api/v1",
        cache: Optional[TTLCache] = None,
        timeout_s: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.cache = cache or TTLCache(default_ttl_seconds=CACHE_TTL_SECONDS)
        self.timeout_s = timeout_s

    def list_models(self) -> List[Dict[str, Any]]:
        cached = self.cache.get(CACHE_KEY)
        if cached is not None:
            return cached

        if not self.api_key:
            logger.warning("No OpenRouter API key configured, using offline model list")
            return [dict(m) for m in ALLOWED_MODELS]

        try:
            with httpx.Client(timeout=self.timeout_s) as client:
                response = client.get(
                    f"{self.base_url}/models",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            response.raise_for_status()
            all_models = response.json().get("data") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"Error loading models, using offline list: {exc}")
            return [dict(m) for m in ALLOWED_MODELS]

        models = filter_allowed_models(all_models)
        self.cache.set(CACHE_KEY, models)
        return models


# Global catalog instance
_catalog: Optional[ModelCatalog] = None


def get_model_catalog(api_key: Optional[str], base_url: str) -> ModelCatalog:
    global _catalog
    if _catalog is None or (_catalog.api_key, _catalog.base_url) != (api_key, base_url):
        _catalog = ModelCatalog(api_key=api_key, base_url=base_url)
    return _catalog


def reset_model_catalog() -> None:
    global _catalog
    _catalog = None
