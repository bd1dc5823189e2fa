import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import httpx

from email_to_ics.core.config import AppConfig
from email_to_ics.core.exceptions import ConfigurationError, MalformedResponse, ProviderHttpError, ProviderTimeout
from email_to_ics.extraction.prompt import build_response_format
from email_to_ics.observability.logger import log_info, timing


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def extract_events(
        self,
        system_prompt: str,
        user_prompt: str,
        max_events: int,
        screenshot: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        """Run one extraction call and return the raw message content."""
        pass


class StubLLMClient(LLMClient):
    """Deterministic stub LLM client for testing and when LLM is disabled."""

    def __init__(self, events: Optional[List[Dict[str, Any]]] = None):
        self.events = events
        self.calls: List[Dict[str, Any]] = []

    def extract_events(
        self,
        system_prompt: str,
        user_prompt: str,
        max_events: int,
        screenshot: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "max_events": max_events,
            "screenshot": screenshot,
            "model": model,
        })
        events = self.events if self.events is not None else [self._default_event(user_prompt)]
        return json.dumps({"events": events[:max_events]})

    def _default_event(self, user_prompt: str) -> Dict[str, Any]:
        """Build a fixed event, picking up the source URL from the prompt if present."""
        url = "https://example.com/event"
        for line in user_prompt.splitlines():
            if line.startswith("Source URL: "):
                url = line[len("Source URL: "):].strip()
                break

        return {
            "summary": "Sample Event",
            "location": "Main Hall",
            "start_date": "2025-10-03",
            "start_time": "19:30",
            "end_date": "2025-10-03",
            "end_time": "21:30",
            "description": "Stub extraction (LLM disabled).",
            "timezone": "America/Los_Angeles",
            "url": url,
        }


class OpenRouterClient(LLMClient):
    """OpenRouter chat-completions client for structured event extraction."""

    def __init__(
        self,
        api_key: str,
        model: str = "google/gemini-2.5-pro",
        max_tokens: int = 20000,
        timeout_ms: int = 120000,
        base_url: str = "https://openrouter.ai/api/v1",
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_ms / 1000.0
        self.base_url = base_url

    def extract_events(
        self,
        system_prompt: str,
        user_prompt: str,
        max_events: int,
        screenshot: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        model_to_use = model or self.model
        data = {
            "model": model_to_use,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": self._user_content(user_prompt, screenshot)},
            ],
            "max_tokens": self.max_tokens,
            "temperature": 0.1,
            "response_format": build_response_format(max_events),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://email-to-ics.local",
            "X-Title": "Email to ICS",
        }

        try:
            with timing("openrouter_call") as t:
                with httpx.Client(timeout=self.timeout_seconds) as client:
                    response = client.post(
                        f"{self.base_url}/chat/completions",
                        headers=headers,
                        json=data
                    )
        except httpx.TimeoutException:
            raise ProviderTimeout("OpenRouter", self.timeout_seconds)
        except httpx.RequestError as exc:
            # status 0: no HTTP response was received
            raise ProviderHttpError("OpenRouter", 0, str(exc))

        log_info("AI request completed", {
            "model": model_to_use,
            "status_code": response.status_code,
            "duration_ms": round(t.get_duration_ms() or 0, 2),
        })

        if not 200 <= response.status_code < 300:
            raise ProviderHttpError("OpenRouter", response.status_code, response.text)

        try:
            result = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"OpenRouter returned a non-JSON body: {exc}") from exc
        if not isinstance(result, dict):
            raise MalformedResponse("OpenRouter returned an unexpected response shape")

        choices = result.get("choices") or [{}]
        first = choices[0] if isinstance(choices, list) and isinstance(choices[0], dict) else {}
        message = first.get("message")
        if not isinstance(message, dict):
            return ""
        return message.get("content") or ""

    def _user_content(self, user_prompt: str, screenshot: Optional[str]) -> Union[str, List[Dict[str, Any]]]:
        """Plain text, or text plus an image part when a screenshot is attached."""
        if not screenshot:
            return user_prompt

        if screenshot.startswith("data:image/"):
            screenshot = screenshot.split(",", 1)[-1]
        return [
            {"type": "text", "text": user_prompt},
            {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{screenshot}"}},
        ]


def select_llm_client(config: AppConfig) -> LLMClient:
    """Factory function to select LLM client based on configuration."""
    if not config.llm_enabled:
        return StubLLMClient()

    if not config.openrouter_api_key:
        raise ConfigurationError("OpenRouter API key not configured")

    return OpenRouterClient(
        api_key=config.openrouter_api_key,
        model=config.ai_model,
        max_tokens=config.ai_max_tokens,
        timeout_ms=config.ai_timeout_ms,
        base_url=config.openrouter_base_url,
    )
