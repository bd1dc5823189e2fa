import base64
from datetime import date
from unittest.mock import patch, MagicMock

import httpx
import pytest

from email_to_ics.core.config import AppConfig
from email_to_ics.core.exceptions import ConfigurationError, ProviderHttpError, ProviderTimeout
from email_to_ics.core.models import EventRecord
from email_to_ics.rendering.invite_body import build_subject, render_invite_body
from email_to_ics.services.emailer import ConsoleEmailer, PostmarkEmailer, select_emailer

ICS = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR"


def _event(summary="Concert", **overrides):
    data = dict(summary=summary, location="Davies Hall", start_date=date(2025, 10, 3), description="Symphony")
    data.update(overrides)
    return EventRecord(**data)


class TestPostmarkEmailer:
    """Test Postmark delivery with mocked HTTP calls."""

    def setup_method(self):
        self.emailer = PostmarkEmailer(api_key="pm-token", timeout_s=15.0)

    def test_payload_shape(self):
        payload = self.emailer.build_payload("to@example.com", "Calendar Invite: Concert", "body", ICS, "from@example.com")
        assert payload["From"] == "from@example.com"
        assert payload["To"] == "to@example.com"
        assert payload["TextBody"] == "body"
        attachment = payload["Attachments"][0]
        assert attachment["Name"] == "invite.ics"
        assert attachment["ContentType"] == "text/calendar"
        assert base64.b64decode(attachment["Content"]).decode("utf-8") == ICS

    @patch("httpx.Client")
    def test_send_returns_message_id(self, mock_client):
        mock_post = mock_client.return_value.__enter__.return_value.post
        response = MagicMock(status_code=200)
        response.json.return_value = {"MessageID": "b7bc2f4a-e38e"}
        mock_post.return_value = response

        message_id = self.emailer.send_invite("to@example.com", "s", "body", ICS, "from@example.com")

        assert message_id == "b7bc2f4a-e38e"
        assert mock_post.call_args[0][0] == "https://api.postmarkapp.com/email"
        assert mock_post.call_args[1]["headers"]["X-Postmark-Server-Token"] == "pm-token"
        mock_client.assert_called_once_with(timeout=15.0)

    @patch("httpx.Client")
    def test_error_status(self, mock_client):
        mock_client.return_value.__enter__.return_value.post.return_value = MagicMock(
            status_code=422, text='{"ErrorCode":300}'
        )
        with pytest.raises(ProviderHttpError) as exc_info:
            self.emailer.send_invite("to@example.com", "s", "body", ICS, "from@example.com")
        assert exc_info.value.provider == "Postmark"
        assert exc_info.value.status == 422

    @patch("httpx.Client")
    def test_timeout(self, mock_client):
        mock_client.return_value.__enter__.return_value.post.side_effect = httpx.ConnectTimeout("slow")
        with pytest.raises(ProviderTimeout):
            self.emailer.send_invite("to@example.com", "s", "body", ICS, "from@example.com")

    def test_missing_sender(self):
        with pytest.raises(ConfigurationError):
            self.emailer.send_invite("to@example.com", "s", "body", ICS, "")


class TestConsoleEmailer:

    def test_records_send(self):
        emailer = ConsoleEmailer()
        message_id = emailer.send_invite("to@example.com", "s", "body", ICS, "from@example.com")
        assert message_id.startswith("MSG-LOCAL-")
        assert emailer.sent[0]["recipient"] == "to@example.com"


class TestSelectEmailer:

    def test_console(self):
        assert isinstance(select_emailer(AppConfig(mail_driver="console")), ConsoleEmailer)

    def test_postmark_requires_key(self):
        with pytest.raises(ConfigurationError):
            select_emailer(AppConfig(mail_driver="postmark"))

    def test_postmark(self):
        emailer = select_emailer(AppConfig(mail_driver="postmark", postmark_api_key="k", postmark_timeout_s=3))
        assert isinstance(emailer, PostmarkEmailer)
        assert emailer.timeout_s == 3

    def test_unknown_driver(self):
        with pytest.raises(ConfigurationError):
            select_emailer(AppConfig(mail_driver="smtp"))


class TestInviteBody:
    """Test subject and body rendering."""

    def test_single_subject(self):
        assert build_subject([_event()]) == "Calendar Invite: Concert"

    def test_multi_subject(self):
        assert build_subject([_event("A"), _event("B")]) == "Calendar Invites: 2 events"

    def test_single_body(self):
        body = render_invite_body([_event()])
        assert body.startswith("Please find the calendar invitation attached.")
        assert "Event: Concert" in body
        assert "Location: Davies Hall" in body
        assert "Description: Symphony" in body
        assert body.rstrip().endswith("This invitation was generated automatically.")

    def test_single_body_omits_empty_fields(self):
        body = render_invite_body([_event(location="", description="")])
        assert "Location:" not in body
        assert "Description:" not in body

    def test_multi_body(self):
        body = render_invite_body([_event("Night 1"), _event("Night 2", start_date=date(2025, 10, 4))])
        assert body.startswith("Please find the calendar invitations attached.")
        assert "Events (2):" in body
        assert "1. Night 1" in body
        assert "2. Night 2" in body
        assert "   Date: 2025-10-04" in body

    def test_body_not_html_escaped(self):
        body = render_invite_body([_event("Rock & Roll <Live>")])
        assert "Event: Rock & Roll <Live>" in body
