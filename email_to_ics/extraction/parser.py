import json
import logging
import re
from typing import Any, List

from pydantic import ValidationError

from email_to_ics.core.exceptions import MalformedResponse, SchemaViolation
from email_to_ics.core.models import EventRecord
from email_to_ics.extraction.prompt import REQUIRED_EVENT_FIELDS

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fence(raw_text: str) -> str:
    """Unwrap a ```json ... ``` (or bare ```) block if the model added one."""
    cleaned = (raw_text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_ai_response(raw_text: str) -> List[EventRecord]:
    """
    Decode and validate the model's raw output into event records.

    Args:
        raw_text: First choice message content from the AI provider

    Returns:
        Non-empty list of EventRecord in the order the model returned them

    Raises:
        MalformedResponse: The text is not JSON
        SchemaViolation: The JSON does not match the event schema
    """
    cleaned = strip_code_fence(raw_text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning(f"AI response is not valid JSON: {exc}")
        raise MalformedResponse(f"Failed to parse AI response: {exc}") from exc

    if not isinstance(parsed, dict) or "events" not in parsed or parsed["events"] is None:
        raise SchemaViolation("events", "missing")

    events = parsed["events"]
    if not isinstance(events, list):
        raise SchemaViolation("events", "wrong_type")
    if not events:
        raise SchemaViolation("events", "empty")

    return [_decode_event(raw, index) for index, raw in enumerate(events)]


def _decode_event(raw: Any, index: int) -> EventRecord:
    if not isinstance(raw, dict):
        raise SchemaViolation("events", "wrong_type", index=index)

    for field in REQUIRED_EVENT_FIELDS:
        value = raw.get(field)
        if not isinstance(value, str) or not value.strip():
            raise SchemaViolation(field, "missing", index=index)

    data = {field: raw[field] for field in REQUIRED_EVENT_FIELDS}
    # Models sometimes send "" instead of null for an absent time
    data["start_time"] = raw.get("start_time") or None
    data["end_time"] = raw.get("end_time") or None

    try:
        return EventRecord(**data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else "events"
        raise SchemaViolation(field, "invalid", index=index) from exc
