"""
Review-before-send workflow.

An entry is pending from request_review() until confirm() dispatches it.
Whoever holds the token can trigger delivery, so tokens come from the
secrets module and are single use.
"""
import secrets
import time
from typing import Optional, Sequence

from email_to_ics.core.exceptions import InvalidOrExpiredToken
from email_to_ics.core.models import ConfirmationEntry, DispatchResult, EventRecord
from email_to_ics.observability.logger import log_event, log_warning, timing
from email_to_ics.rendering.invite_body import render_invite_body
from email_to_ics.services.emailer import Emailer
from email_to_ics.storage.confirmations import ConfirmationStore


def generate_confirmation_token() -> str:
    return secrets.token_urlsafe(32)


class ConfirmationWorkflow:

    def __init__(self, store: ConfirmationStore, emailer: Emailer, sender: str, ttl_seconds: Optional[float] = None):
        self.store = store
        self.emailer = emailer
        self.sender = sender
        self.ttl_seconds = ttl_seconds if ttl_seconds else None

    def request_review(self, ics_content: str, recipient: str, subject: str, events: Sequence[EventRecord]) -> str:
        """Store a pending invite and return the token that releases it."""
        token = generate_confirmation_token()
        created_at = time.time()
        entry = ConfirmationEntry(
            ics_content=ics_content,
            recipient=recipient,
            subject=subject,
            events=list(events),
            created_at=created_at,
            expires_at=created_at + self.ttl_seconds if self.ttl_seconds else None,
        )
        self.store.put(token, entry)
        return token

    def confirm(self, token: str) -> DispatchResult:
        """
        Dispatch a pending invite exactly once.

        The entry is claimed atomically before sending. If the email
        provider fails, it is put back under the same token so the caller
        can retry without re-running extraction.
        """
        entry = self.store.pop(token)
        if entry is None:
            raise InvalidOrExpiredToken()

        try:
            result = self.dispatch(entry)
        except Exception:
            self.store.put(token, entry)
            log_warning("Dispatch failed, confirmation entry restored", {"subject_len": len(entry.subject)})
            raise

        log_event(
            action="confirmed",
            driver=result.driver,
            subject=entry.subject,
            event_count=len(entry.events),
            message_id=result.message_id,
        )
        return result

    def discard(self, token: str) -> bool:
        return self.store.delete(token)

    def dispatch(self, entry: ConfirmationEntry) -> DispatchResult:
        with timing("dispatch") as t:
            message_id = self.emailer.send_invite(
                recipient=entry.recipient,
                subject=entry.subject,
                text_body=render_invite_body(entry.events),
                ics_content=entry.ics_content,
                sender=self.sender,
            )
        log_event(
            action="sent",
            driver=self.emailer.driver,
            subject=entry.subject,
            event_count=len(entry.events),
            message_id=message_id,
            duration_ms=t.get_duration_ms(),
        )
        return DispatchResult(
            message_id=message_id,
            recipient=entry.recipient,
            subject=entry.subject,
            driver=self.emailer.driver,
            ics_content=entry.ics_content,
            event_count=len(entry.events),
        )
