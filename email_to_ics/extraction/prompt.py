"""
Prompt construction for event extraction.

The user prompt carries the mode directive, event status, optional
instructions and source URL, then the raw page content last. The system
prompt and the strict response schema are fixed per request.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


TRACKING_PARAMS = frozenset([
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "utm_id", "utm_source_platform", "utm_creative_format", "utm_marketing_tactic",
    "fbclid", "gclid", "dclid", "msclkid",
    "mc_cid", "mc_eid",  # Mailchimp
    "_ga", "_gid", "_gac",  # Google Analytics
    "ref", "referer", "referrer",
])

MULTIDAY_DIRECTIVE = "MULTI-DAY MODE: Extract ALL related performances/sessions as SEPARATE events."
SINGLE_EVENT_DIRECTIVE = "SINGLE EVENT MODE: Focus on extracting ONLY the main/primary event."

REQUIRED_EVENT_FIELDS = ("summary", "location", "start_date", "end_date", "description", "timezone", "url")

SYSTEM_PROMPT = """You extract calendar event data from web pages, emails and screenshots.

# PRIMARY EVENT IDENTIFICATION
Unless the user message says MULTI-DAY MODE, extract ONLY the main event:
- the most prominently featured and detailed event
- usually the subject of the email or the central content of the page
- for tickets or confirmations, the event the ticket is issued for
Ignore "Related Events", "You might also like", sidebars, and events mentioned in passing.
If unsure, pick the event with the most complete details, then the earliest upcoming date.

In MULTI-DAY MODE, return every related performance or session as its own event.

# OUTPUT FORMAT
Return ONLY a JSON object of the form {"events": [ ... ]}. Each event has:
- summary: concise title (e.g. "SF Symphony Concert - Beethoven")
- location: venue name or address
- start_date: YYYY-MM-DD
- start_time: HH:MM in 24h local time, or null when no time is given (all-day)
- end_date: YYYY-MM-DD (same as start_date for single-day events)
- end_time: HH:MM in 24h local time, or null
- description: concise plain-text summary under 1000 characters, no HTML
- timezone: IANA timezone identifier (e.g. America/Los_Angeles)
- url: link to the event page or tickets

# DATES AND TIMEZONES
- If the year is not stated, use the current year unless the date has already passed, then use next year.
- Infer the timezone from the location. Default to America/Los_Angeles when unknown or virtual.
- Times are local wall-clock times in that timezone; do not convert to UTC.
- Ignore dates of the email itself or of forwarded message headers.

# SPECIAL INSTRUCTIONS
If the user message contains "Special instructions", give them strong priority. When they
describe an event themselves, treat them as the primary source and use the page content
only for missing details.
"""


def strip_tracking_parameters(url: Optional[str]) -> Optional[str]:
    """
    Remove known tracking parameters from a URL's query string.

    Returns the original string untouched when nothing was removed or when
    the URL cannot be parsed.
    """
    if not url:
        return url

    try:
        parts = urlsplit(url)
        params = parse_qsl(parts.query, keep_blank_values=True)
        kept = [(k, v) for k, v in params if k not in TRACKING_PARAMS]
        if len(kept) == len(params):
            return url
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))
    except ValueError as exc:
        logger.warning(f"Could not strip tracking parameters from URL: {exc}")
        return url


def build_prompt(
    content: str,
    instructions: Optional[str] = None,
    source_url: Optional[str] = None,
    multiday: bool = False,
    tentative: bool = True,
) -> str:
    """Build the user prompt sent alongside SYSTEM_PROMPT."""
    sections = [MULTIDAY_DIRECTIVE if multiday else SINGLE_EVENT_DIRECTIVE]
    sections.append(f"Event status: {'Tentative' if tentative else 'Confirmed'}")

    if instructions:
        sections.append(f"Special instructions: {instructions}")

    clean_url = strip_tracking_parameters(source_url)
    if clean_url:
        sections.append(f"Source URL: {clean_url}")

    prompt = "\n\n".join(sections)
    return prompt + "\n\nContent to analyze:\n" + (content or "")


def build_response_format(max_events: int) -> Dict[str, Any]:
    """Strict JSON-schema response_format for the chat-completion request."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "calendar_events",
            "strict": True,
            "schema": {
                "type": "object",
                "properties": {
                    "events": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "summary": {"type": "string"},
                                "location": {"type": "string"},
                                "start_date": {"type": "string"},
                                "start_time": {"type": ["string", "null"]},
                                "end_date": {"type": "string"},
                                "end_time": {"type": ["string", "null"]},
                                "description": {"type": "string"},
                                "timezone": {"type": "string"},
                                "url": {"type": "string"},
                            },
                            "required": list(REQUIRED_EVENT_FIELDS),
                            "additionalProperties": False,
                        },
                        "minItems": 1,
                        "maxItems": max_events,
                    }
                },
                "required": ["events"],
                "additionalProperties": False,
            },
        },
    }
