import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from email_to_ics.core.config import load_config
from email_to_ics.core.exceptions import InviteError
from email_to_ics.observability.logger import init_sentry, log_error
from email_to_ics.routes.admin import purge_expired_confirmations, router as admin_router
from email_to_ics.routes.health import router as health_router
from email_to_ics.routes.invites import router as invites_router
from email_to_ics.routes.models import router as models_router

logger = logging.getLogger("email_to_ics")
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Email to ICS")

# Scheduler (runs in-process)
scheduler = BackgroundScheduler(timezone="UTC")
CLEANUP_JOB_ID = "confirmation_cleanup"


def cleanup_job():
    try:
        purge_expired_confirmations()
    except Exception as e:
        logger.exception(f"cleanup_job failed: {e}")


@app.on_event("startup")
def _startup():
    init_sentry()
    cfg = load_config()
    if cfg.run_scheduler:
        scheduler.add_job(
            cleanup_job,
            "interval",
            id=CLEANUP_JOB_ID,
            minutes=cfg.confirmation_cleanup_minutes,
            replace_existing=True,
        )
        scheduler.start()
        logger.info(f"Scheduler started (RUN_SCHEDULER=1), purging every {cfg.confirmation_cleanup_minutes} min")
    else:
        logger.info("Scheduler disabled (RUN_SCHEDULER=0)")


@app.on_event("shutdown")
def _shutdown():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


@app.exception_handler(InviteError)
async def invite_error_handler(request: Request, exc: InviteError):
    log_error(exc, {"path": request.url.path, "status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Routes
app.include_router(invites_router, prefix="/invites", tags=["invites"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
app.include_router(models_router, tags=["models"])
app.include_router(health_router, tags=["health"])


@app.get("/")
def health():
    return {"status": "ok"}
