from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from email_to_ics.observability.logger import log_info
from email_to_ics.pipeline.service import get_pipeline
from email_to_ics.routes.auth import require_api_key_if_configured
from email_to_ics.schemas.invites import CleanupResponse


router = APIRouter()


def purge_expired_confirmations() -> int:
    """Delete expired confirmation entries. Shared by the endpoint and the scheduled job."""
    store = get_pipeline().store
    removed = store.cleanup_expired()
    log_info("Expired confirmations purged", {"removed": removed, "backend": store.backend})
    return removed


@router.post("/confirmations/cleanup")
def cleanup_confirmations(request: Request):
    require_api_key_if_configured(request)
    removed = purge_expired_confirmations()
    response = CleanupResponse(removed=removed, stats=get_pipeline().store.get_stats())
    return JSONResponse(status_code=200, content=response.model_dump())
