from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from email_to_ics.core.models import EventRecord

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_invite_body(events: Sequence[EventRecord]) -> str:
    """Plain-text email body that accompanies the invite.ics attachment."""
    template = _env.get_template("invite_email.txt")
    return template.render(events=list(events))


def build_subject(events: Sequence[EventRecord]) -> str:
    if len(events) == 1:
        return f"Calendar Invite: {events[0].summary}"
    return f"Calendar Invites: {len(events)} events"
