import logging
from typing import Optional, Union

from email_to_ics.calendar.ics import generate_ics
from email_to_ics.core.config import AppConfig, load_config
from email_to_ics.core.exceptions import ConfigurationError, InviteError
from email_to_ics.core.models import (
    ConfirmationEntry,
    DirectResult,
    DispatchResult,
    ProcessOptions,
    ReviewResult,
)
from email_to_ics.extraction.parser import parse_ai_response
from email_to_ics.extraction.prompt import SYSTEM_PROMPT, build_prompt
from email_to_ics.llm.service import LLMClient, select_llm_client
from email_to_ics.observability.logger import log_error, log_event, timing
from email_to_ics.pipeline.confirmation import ConfirmationWorkflow
from email_to_ics.rendering.invite_body import build_subject
from email_to_ics.routes.health import update_last_run
from email_to_ics.services.emailer import Emailer, select_emailer
from email_to_ics.storage.confirmations import ConfirmationStore, select_confirmation_store

logger = logging.getLogger(__name__)


def select_recipient(tentative: bool, config: AppConfig) -> str:
    """Tentative and confirmed invites go to two different configured inboxes."""
    if tentative:
        if not config.to_tentative_email:
            raise ConfigurationError("TO_TENTATIVE_EMAIL not configured")
        return config.to_tentative_email
    if not config.to_confirmed_email:
        raise ConfigurationError("TO_CONFIRMED_EMAIL not configured")
    return config.to_confirmed_email


class InvitePipeline:
    """
    Page content in, calendar invite out.

    process() runs prompt -> AI -> validation -> ICS, then either sends the
    invite right away or parks it behind a confirmation token.
    """

    def __init__(self, config: AppConfig, llm_client: LLMClient, emailer: Emailer, store: ConfirmationStore):
        self.config = config
        self.llm_client = llm_client
        self.emailer = emailer
        self.store = store
        ttl_seconds = config.confirmation_ttl_minutes * 60 if config.confirmation_ttl_minutes > 0 else None
        self.workflow = ConfirmationWorkflow(
            store=store,
            emailer=emailer,
            sender=config.from_email or "",
            ttl_seconds=ttl_seconds,
        )

    def process(self, content: str, options: ProcessOptions) -> Union[DirectResult, ReviewResult]:
        recipient = select_recipient(options.tentative, self.config)
        if self.emailer.driver == "postmark":
            # Postmark rejects sends without a sender; fail before the AI call
            self.config.require("from_email")
        max_events = self.config.multiday_max_events if options.multiday else 1

        prompt = build_prompt(
            content,
            instructions=options.instructions,
            source_url=options.url,
            multiday=options.multiday,
            tentative=options.tentative,
        )

        with timing("extraction") as t:
            raw = self.llm_client.extract_events(
                SYSTEM_PROMPT,
                prompt,
                max_events,
                screenshot=options.screenshot,
                model=options.ai_model,
            )
        events = parse_ai_response(raw)
        logger.info(f"Extracted {len(events)} event(s) in {round(t.get_duration_ms() or 0)}ms")

        ics_content = generate_ics(events, options.tentative, organizer_email=self.config.from_email)
        subject = build_subject(events)

        if options.review_mode == "review":
            token = self.workflow.request_review(ics_content, recipient, subject, events)
            log_event(
                action="review_requested",
                driver=self.emailer.driver,
                subject=subject,
                event_count=len(events),
            )
            return ReviewResult(
                confirmation_token=token,
                ics_content=ics_content,
                recipient=recipient,
                subject=subject,
                event_count=len(events),
            )

        entry = ConfirmationEntry(
            ics_content=ics_content,
            recipient=recipient,
            subject=subject,
            events=events,
            created_at=0.0,
        )
        try:
            dispatch = self.workflow.dispatch(entry)
        except ConfigurationError as exc:
            log_error(exc, {"action": "failed", "event_count": len(events), "retry_available": False})
            update_last_run("failed", self.emailer.driver, subject, len(events), success=False, error=exc.message)
            raise
        except InviteError as exc:
            # Keep the rendered invite so confirm(retry_token) can resend it
            exc.retry_token = self.workflow.request_review(ics_content, recipient, subject, events)
            log_error(exc, {"action": "failed", "event_count": len(events), "retry_available": True})
            update_last_run("failed", self.emailer.driver, subject, len(events), success=False, error=exc.message)
            raise

        update_last_run("sent", self.emailer.driver, subject, len(events), message_id=dispatch.message_id)
        return DirectResult(
            ics_content=ics_content,
            subject=subject,
            recipient=recipient,
            message_id=dispatch.message_id,
            event_count=len(events),
        )

    def confirm(self, token: str) -> DispatchResult:
        result = self.workflow.confirm(token)
        update_last_run("confirmed", result.driver, result.subject, result.event_count, message_id=result.message_id)
        return result

    def discard(self, token: str) -> bool:
        return self.workflow.discard(token)


# Global pipeline instance
_pipeline: Optional[InvitePipeline] = None


def build_pipeline(config: AppConfig) -> InvitePipeline:
    return InvitePipeline(
        config=config,
        llm_client=select_llm_client(config),
        emailer=select_emailer(config),
        store=select_confirmation_store(config),
    )


def get_pipeline() -> InvitePipeline:
    """Get the global pipeline instance, building it from the environment on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(load_config())
    return _pipeline


def reset_pipeline() -> None:
    """Reset the global pipeline instance."""
    global _pipeline
    _pipeline = None
