from fastapi import HTTPException, Request

from email_to_ics.core.config import load_config


def require_api_key_if_configured(request: Request) -> None:
    """Reject the request unless it carries the configured X-API-Key. No-op when API_KEY is unset."""
    cfg = load_config()
    if not cfg.api_key:
        return
    provided = request.headers.get("x-api-key")
    if provided != cfg.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
