from __future__ import annotations

import base64
import time
from typing import Optional

import httpx

from email_to_ics.core.config import AppConfig
from email_to_ics.core.exceptions import ConfigurationError, ProviderHttpError, ProviderTimeout
from email_to_ics.observability.logger import logger

ATTACHMENT_NAME = "invite.ics"
ATTACHMENT_TYPE = "text/calendar"


class Emailer:
    driver: str

    def send_invite(self, recipient: str, subject: str, text_body: str, ics_content: str, sender: str) -> Optional[str]:
        raise NotImplementedError


class ConsoleEmailer(Emailer):
    driver = "console"

    def __init__(self):
        self.sent: list[dict] = []

    def send_invite(self, recipient: str, subject: str, text_body: str, ics_content: str, sender: str) -> Optional[str]:
        # Simulate a send. Avoid logging the full document.
        self.sent.append({
            "recipient": recipient,
            "subject": subject,
            "text_body": text_body,
            "ics_content": ics_content,
            "sender": sender,
        })
        logger.info(
            f"[console-email] from={sender} to={recipient} subject={subject!r} "
            f"ics_chars={len(ics_content)} body_preview={text_body[:120]!r}"
        )
        return f"MSG-LOCAL-{int(time.time()*1000)}"


class PostmarkEmailer(Emailer):
    driver = "postmark"

    def __init__(self, api_key: str, timeout_s: float = 15.0, base_url: str = "https://api.postmarkapp.com"):
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.base_url = base_url

    def build_payload(self, recipient: str, subject: str, text_body: str, ics_content: str, sender: str) -> dict:
        return {
            "From": sender,
            "To": recipient,
            "Subject": subject,
            "TextBody": text_body,
            "Attachments": [
                {
                    "Name": ATTACHMENT_NAME,
                    "Content": base64.b64encode(ics_content.encode("utf-8")).decode("ascii"),
                    "ContentType": ATTACHMENT_TYPE,
                }
            ],
        }

    def send_invite(self, recipient: str, subject: str, text_body: str, ics_content: str, sender: str) -> Optional[str]:
        if not sender:
            raise ConfigurationError("FROM_EMAIL not configured")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.api_key,
        }
        data = self.build_payload(recipient, subject, text_body, ics_content, sender)

        try:
            with httpx.Client(timeout=self.timeout_s) as client:
                resp = client.post(f"{self.base_url}/email", headers=headers, json=data)
        except httpx.TimeoutException:
            raise ProviderTimeout("Postmark", self.timeout_s)
        except httpx.RequestError as exc:
            raise ProviderHttpError("Postmark", 0, str(exc))

        if not 200 <= resp.status_code < 300:
            raise ProviderHttpError("Postmark", resp.status_code, resp.text)

        try:
            return resp.json().get("MessageID")
        except ValueError:
            return None


def select_emailer(config: AppConfig) -> Emailer:
    driver = config.mail_driver
    if driver == "console":
        return ConsoleEmailer()
    if driver == "postmark":
        return PostmarkEmailer(api_key=config.require("postmark_api_key"), timeout_s=config.postmark_timeout_s)
    raise ConfigurationError(f"Unsupported MAIL_DRIVER: {driver}")
