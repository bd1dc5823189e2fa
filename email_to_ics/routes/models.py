from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from email_to_ics.core.config import load_config
from email_to_ics.llm.catalog import get_model_catalog
from email_to_ics.routes.auth import require_api_key_if_configured


router = APIRouter()


@router.get("/models")
def list_models(request: Request):
    """AI models the host may pass as `ai_model`, with the configured default."""
    require_api_key_if_configured(request)
    cfg = load_config()
    catalog = get_model_catalog(cfg.openrouter_api_key, cfg.openrouter_base_url)
    return JSONResponse(
        status_code=200,
        content={"ok": True, "default_model": cfg.ai_model, "models": catalog.list_models()},
    )
