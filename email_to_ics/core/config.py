import os
from typing import Optional

from pydantic import BaseModel

from email_to_ics.core.exceptions import ConfigurationError


DEFAULT_AI_MODEL = "google/gemini-2.5-pro"


class AppConfig(BaseModel):
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ai_model: str = DEFAULT_AI_MODEL
    ai_max_tokens: int = 20000
    ai_timeout_ms: int = 120000
    multiday_max_events: int = 50
    llm_enabled: bool = True
    mail_driver: str = "postmark"
    postmark_api_key: Optional[str] = None
    postmark_timeout_s: float = 15.0
    from_email: Optional[str] = None
    to_tentative_email: Optional[str] = None
    to_confirmed_email: Optional[str] = None
    api_key: Optional[str] = None
    confirmation_store: str = "sqlite"
    confirmation_db_path: str = "./data/confirmations.db"
    confirmation_ttl_minutes: int = 1440
    run_scheduler: bool = False
    confirmation_cleanup_minutes: int = 30

    def require(self, field: str) -> str:
        """Return a required string setting or raise ConfigurationError."""
        value = getattr(self, field)
        if not value:
            raise ConfigurationError(f"{field.upper()} not configured")
        return value


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw and raw.strip().lstrip("-").isdigit():
        return int(raw)
    return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def load_config() -> AppConfig:
    return AppConfig(
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
        openrouter_base_url=os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/"),
        ai_model=os.getenv("AI_MODEL") or DEFAULT_AI_MODEL,
        ai_max_tokens=_int_env("AI_MAX_TOKENS", 20000),
        ai_timeout_ms=_int_env("AI_TIMEOUT_MS", 120000),
        multiday_max_events=_int_env("MULTIDAY_MAX_EVENTS", 50),
        llm_enabled=os.getenv("LLM_ENABLED", "true").lower() == "true",
        mail_driver=os.getenv("MAIL_DRIVER", "postmark").lower(),
        postmark_api_key=os.getenv("POSTMARK_API_KEY") or None,
        postmark_timeout_s=_float_env("POSTMARK_TIMEOUT_S", 15.0),
        from_email=os.getenv("FROM_EMAIL") or None,
        to_tentative_email=os.getenv("TO_TENTATIVE_EMAIL") or None,
        to_confirmed_email=os.getenv("TO_CONFIRMED_EMAIL") or None,
        api_key=os.getenv("API_KEY") or None,
        confirmation_store=os.getenv("CONFIRMATION_STORE", "sqlite").lower(),
        confirmation_db_path=os.getenv("CONFIRMATION_DB_PATH", "./data/confirmations.db"),
        confirmation_ttl_minutes=_int_env("CONFIRMATION_TTL_MINUTES", 1440),
        run_scheduler=os.getenv("RUN_SCHEDULER", "0") == "1",
        confirmation_cleanup_minutes=_int_env("CONFIRMATION_CLEANUP_MINUTES", 30),
    )
