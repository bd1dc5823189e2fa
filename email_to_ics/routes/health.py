import os
import sqlite3
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

router = APIRouter()

# Global state for last run tracking
_last_run: Optional[Dict[str, Any]] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def update_last_run(
    action: str,
    driver: str,
    subject: str,
    event_count: int,
    message_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    success: bool = True,
    error: Optional[str] = None
) -> None:
    """
    Update the last run information.

    Args:
        action: The action performed ('sent', 'confirmed', 'failed')
        driver: The email driver used
        subject: The email subject
        event_count: Number of events in the invite
        message_id: Optional message ID
        duration_ms: Optional duration in milliseconds
        success: Whether the operation was successful
        error: Optional error message
    """
    global _last_run

    _last_run = {
        "time": _now(),
        "action": action,
        "driver": driver,
        "subject": subject,
        "event_count": event_count,
        "success": success,
    }

    if message_id is not None:
        _last_run["message_id"] = message_id

    if duration_ms is not None:
        _last_run["duration_ms"] = round(duration_ms, 2)

    if error is not None:
        _last_run["error"] = error


def get_last_run() -> Optional[Dict[str, Any]]:
    """Get the last run information."""
    return _last_run


@router.get("/healthz")
async def health_check() -> JSONResponse:
    """Health check with last run metadata and observability status."""
    response = {
        "status": "ok",
        "timestamp": _now(),
    }

    last_run = get_last_run()
    if last_run:
        response["last_run"] = last_run

    obs_enabled = os.getenv("OBS_ENABLED", "false").lower() == "true"
    response["observability"] = {
        "enabled": obs_enabled,
        "sentry_configured": bool(os.getenv("SENTRY_DSN")),
    }

    return JSONResponse(status_code=200, content=response)


@router.get("/healthz/ready")
def readiness_check() -> JSONResponse:
    """
    Readiness check: the pipeline can be built and its confirmation store answers.

    Returns 503 with the failing check when configuration or storage is broken.
    """
    from email_to_ics.core.exceptions import InviteError
    from email_to_ics.pipeline.service import get_pipeline

    checks: Dict[str, Any] = {}
    try:
        pipeline = get_pipeline()
        checks["pipeline"] = "ok"
        checks["confirmation_store"] = pipeline.store.get_stats()
        checks["email_driver"] = pipeline.emailer.driver
    except InviteError as exc:
        checks["pipeline"] = exc.message
    except sqlite3.Error as exc:
        checks["pipeline"] = f"confirmation store unavailable: {exc}"

    all_healthy = checks.get("pipeline") == "ok"
    response = {
        "status": "ready" if all_healthy else "not_ready",
        "timestamp": _now(),
        "checks": checks,
    }
    return JSONResponse(status_code=200 if all_healthy else 503, content=response)


@router.get("/healthz/live")
async def liveness_check() -> JSONResponse:
    return JSONResponse(status_code=200, content={"status": "alive", "timestamp": _now()})
