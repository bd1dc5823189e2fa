import os
import time
import json
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import sentry_sdk

logger = logging.getLogger("email_to_ics")


class TimingContext:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration_ms = (time.monotonic() - self.start_time) * 1000

    def get_duration_ms(self) -> Optional[float]:
        """Get duration in milliseconds."""
        return self.duration_ms


@contextmanager
def timing(operation_name: str):
    """Context manager for timing operations."""
    context = TimingContext(operation_name)
    with context:
        yield context


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def log_event(
    action: str,
    driver: str,
    subject: str,
    event_count: int,
    message_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> None:
    """
    Log a structured pipeline event.

    Args:
        action: What happened ('sent', 'review_requested', 'confirmed', 'failed')
        driver: Email driver in use ('postmark', 'console')
        subject: Email subject, sanitized before logging
        event_count: Number of events in the calendar document
        message_id: Optional message ID from the email provider
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields to include in the log
    """
    log_entry = {
        "timestamp": _now(),
        "action": action,
        "driver": driver,
        "subject": _sanitize_subject(subject),
        "event_count": event_count,
    }

    if message_id is not None:
        log_entry["message_id"] = message_id

    if duration_ms is not None:
        log_entry["duration_ms"] = round(duration_ms, 2)

    log_entry.update(kwargs)

    logger.info(json.dumps(log_entry, separators=(',', ':')))


def _sanitize_subject(subject: str) -> str:
    """Redact subjects that look like they carry secrets and truncate long ones."""
    sensitive_patterns = [
        "password",
        "secret",
        "token",
        "credential",
    ]

    lowered = subject.lower()
    for pattern in sensitive_patterns:
        if pattern in lowered:
            return "[REDACTED]"

    if len(subject) > 100:
        return subject[:97] + "..."

    return subject


def init_sentry() -> bool:
    """
    Initialize Sentry if enabled and DSN is provided.

    Returns:
        True if Sentry was initialized, False otherwise
    """
    if not os.getenv("OBS_ENABLED", "false").lower() == "true":
        return False

    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        logger.info("Sentry DSN not provided, skipping Sentry initialization")
        return False

    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    try:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            traces_sample_rate=0.1,
            environment=os.getenv("ENVIRONMENT", "development"),
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    logger.info("Sentry initialized successfully")
    return True


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """Log an error with optional context."""
    log_entry = {
        "timestamp": _now(),
        "level": "ERROR",
        "error": str(error),
        "error_type": type(error).__name__,
    }

    if context:
        log_entry.update(context)

    logger.error(json.dumps(log_entry, separators=(',', ':')))


def log_warning(message: str, context: Dict[str, Any] = None) -> None:
    log_entry = {
        "timestamp": _now(),
        "level": "WARNING",
        "message": message,
    }

    if context:
        log_entry.update(context)

    logger.warning(json.dumps(log_entry, separators=(',', ':')))


def log_info(message: str, context: Dict[str, Any] = None) -> None:
    log_entry = {
        "timestamp": _now(),
        "level": "INFO",
        "message": message,
    }

    if context:
        log_entry.update(context)

    logger.info(json.dumps(log_entry, separators=(',', ':')))
