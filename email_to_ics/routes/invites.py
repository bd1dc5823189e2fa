from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from email_to_ics.calendar.ics import generate_ics, validate_ics
from email_to_ics.core.config import load_config
from email_to_ics.observability.logger import log_warning
from email_to_ics.pipeline.service import get_pipeline
from email_to_ics.routes.auth import require_api_key_if_configured
from email_to_ics.schemas.invites import (
    ConfirmRequest,
    ConfirmResponse,
    DiscardResponse,
    GenerateIcsRequest,
    ProcessRequest,
)


router = APIRouter()


@router.post("/process")
def process_invite(request: Request, body: ProcessRequest):
    require_api_key_if_configured(request)
    result = get_pipeline().process(body.content, body.to_options())
    return JSONResponse(status_code=200, content=result.model_dump())


@router.post("/confirm")
def confirm_invite(request: Request, body: ConfirmRequest):
    require_api_key_if_configured(request)
    result = get_pipeline().confirm(body.confirmation_token)
    response = ConfirmResponse(
        message_id=result.message_id,
        recipient=result.recipient,
        subject=result.subject,
        driver=result.driver,  # type: ignore[arg-type]
        event_count=result.event_count,
    )
    return JSONResponse(status_code=200, content=response.model_dump())


@router.post("/discard")
def discard_invite(request: Request, body: ConfirmRequest):
    require_api_key_if_configured(request)
    discarded = get_pipeline().discard(body.confirmation_token)
    return JSONResponse(status_code=200, content=DiscardResponse(discarded=discarded).model_dump())


@router.post("/generate-ics")
def generate_ics_file(request: Request, body: GenerateIcsRequest):
    """Serialize already-structured events without calling the AI provider."""
    require_api_key_if_configured(request)
    cfg = load_config()
    ics_content = generate_ics(body.events, body.tentative, organizer_email=cfg.from_email)

    errors = validate_ics(ics_content)
    if errors:
        log_warning("Generated calendar failed validation", {"errors": errors})
        raise HTTPException(status_code=500, detail={"message": "Generated calendar is invalid", "errors": errors})

    return Response(
        content=ics_content,
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="invite.ics"'},
    )
