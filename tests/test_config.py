import pytest

from email_to_ics.core.config import DEFAULT_AI_MODEL, AppConfig, load_config
from email_to_ics.core.exceptions import ConfigurationError

ENV_VARS = [
    "OPENROUTER_API_KEY", "OPENROUTER_BASE_URL", "AI_MODEL", "AI_MAX_TOKENS", "AI_TIMEOUT_MS",
    "MULTIDAY_MAX_EVENTS", "LLM_ENABLED", "MAIL_DRIVER", "POSTMARK_API_KEY", "POSTMARK_TIMEOUT_S",
    "FROM_EMAIL", "TO_TENTATIVE_EMAIL", "TO_CONFIRMED_EMAIL", "API_KEY", "CONFIRMATION_STORE",
    "CONFIRMATION_DB_PATH", "CONFIRMATION_TTL_MINUTES", "RUN_SCHEDULER", "CONFIRMATION_CLEANUP_MINUTES",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    cfg = load_config()
    assert cfg.ai_model == DEFAULT_AI_MODEL
    assert cfg.ai_max_tokens == 20000
    assert cfg.ai_timeout_ms == 120000
    assert cfg.multiday_max_events == 50
    assert cfg.llm_enabled is True
    assert cfg.mail_driver == "postmark"
    assert cfg.postmark_timeout_s == 15.0
    assert cfg.confirmation_store == "sqlite"
    assert cfg.confirmation_ttl_minutes == 1440
    assert cfg.run_scheduler is False
    assert cfg.confirmation_cleanup_minutes == 30
    assert cfg.api_key is None


def test_env_overrides(clean_env):
    clean_env.setenv("OPENROUTER_BASE_URL", "https://proxy.example.com/v1/")
    clean_env.setenv("MULTIDAY_MAX_EVENTS", "10")
    clean_env.setenv("MAIL_DRIVER", "Console")
    clean_env.setenv("LLM_ENABLED", "FALSE")
    clean_env.setenv("CONFIRMATION_TTL_MINUTES", "0")
    clean_env.setenv("RUN_SCHEDULER", "1")

    cfg = load_config()

    assert cfg.openrouter_base_url == "https://proxy.example.com/v1"
    assert cfg.multiday_max_events == 10
    assert cfg.mail_driver == "console"
    assert cfg.llm_enabled is False
    assert cfg.confirmation_ttl_minutes == 0
    assert cfg.run_scheduler is True


def test_bad_numbers_fall_back_to_defaults(clean_env):
    clean_env.setenv("AI_MAX_TOKENS", "lots")
    clean_env.setenv("POSTMARK_TIMEOUT_S", "soon")
    cfg = load_config()
    assert cfg.ai_max_tokens == 20000
    assert cfg.postmark_timeout_s == 15.0


def test_empty_strings_are_unset(clean_env):
    clean_env.setenv("FROM_EMAIL", "")
    clean_env.setenv("API_KEY", "")
    cfg = load_config()
    assert cfg.from_email is None
    assert cfg.api_key is None


def test_require():
    cfg = AppConfig(from_email="invites@example.com")
    assert cfg.require("from_email") == "invites@example.com"
    with pytest.raises(ConfigurationError) as exc_info:
        cfg.require("postmark_api_key")
    assert "POSTMARK_API_KEY" in exc_info.value.message
