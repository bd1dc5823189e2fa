"""
iCalendar (RFC 5545) serialization for extracted events.

One VCALENDAR container holds one VEVENT per event. Timed values are
converted from the event's local timezone to UTC; all-day values are
emitted as DATE values.
"""
import logging
import secrets
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from email_to_ics.core.models import EventRecord

logger = logging.getLogger(__name__)

PRODID = "-//Email to ICS//EN"
CRLF = "\r\n"
MAX_LINE_OCTETS = 75

UTC_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_FORMAT = "%Y%m%d"

END_OF_DAY = time(23, 59, 59)


def escape_text(text: Optional[str]) -> str:
    """Escape a TEXT property value."""
    if not text:
        return ""
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r", "")
        .replace("\n", "\\n")
    )


def unescape_text(text: str) -> str:
    """Inverse of escape_text."""
    out = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            out.append("\n" if nxt in ("n", "N") else nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def fold_line(line: str) -> str:
    """Fold a content line at 75 octets without splitting UTF-8 sequences."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    chunks = []
    current = ""
    limit = MAX_LINE_OCTETS
    for ch in line:
        if len((current + ch).encode("utf-8")) > limit:
            chunks.append(current)
            current = ""
            limit = MAX_LINE_OCTETS - 1  # continuation lines start with a space
        current += ch
    chunks.append(current)
    return (CRLF + " ").join(chunks)


def unfold_lines(content: str) -> List[str]:
    lines: List[str] = []
    for raw in content.split(CRLF):
        if raw.startswith(" ") and lines:
            lines[-1] += raw[1:]
        else:
            lines.append(raw)
    return lines


def _zone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, treating event times as UTC")
        return timezone.utc


def _to_utc(day: date, at: time, tz_name: str) -> str:
    local = datetime.combine(day, at, tzinfo=_zone(tz_name))
    return local.astimezone(timezone.utc).strftime(UTC_FORMAT)


def event_bounds(event: EventRecord) -> Tuple[str, str]:
    """
    Resolve (DTSTART, DTEND) values for an event.

    End resolution order: explicit end date and time, end date alone
    (end of that day), all-day with no end (next day), timed with no
    end (one hour after start). All-day ends are exclusive, so an end
    date is emitted as the following day.
    """
    if event.is_all_day:
        start = event.start_date
        end = (event.end_date or event.start_date) + timedelta(days=1)
        if end <= start:
            end = start + timedelta(days=1)
        return start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)

    start_local = datetime.combine(event.start_date, event.start_time)
    if event.end_date and event.end_time:
        end_local = datetime.combine(event.end_date, event.end_time)
    elif event.end_date:
        end_local = datetime.combine(event.end_date, END_OF_DAY)
    else:
        end_local = start_local + timedelta(hours=1)

    return (
        _to_utc(start_local.date(), start_local.time(), event.timezone),
        _to_utc(end_local.date(), end_local.time(), event.timezone),
    )


def generate_uid(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{int(now.timestamp() * 1000)}-{secrets.token_hex(6)}@email-to-ics"


def _vevent(event: EventRecord, tentative: bool, organizer_email: Optional[str], stamp: str, uid: str) -> List[str]:
    dtstart, dtend = event_bounds(event)
    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{stamp}",
        f"CREATED:{stamp}",
        f"LAST-MODIFIED:{stamp}",
        f"SUMMARY:{escape_text(event.summary)}",
    ]
    if event.description:
        lines.append(f"DESCRIPTION:{escape_text(event.description)}")
    if event.location:
        lines.append(f"LOCATION:{escape_text(event.location)}")
    if event.url:
        lines.append(f"URL:{escape_text(event.url)}")

    if event.is_all_day:
        lines.append(f"DTSTART;VALUE=DATE:{dtstart}")
        lines.append(f"DTEND;VALUE=DATE:{dtend}")
    else:
        lines.append(f"DTSTART:{dtstart}")
        lines.append(f"DTEND:{dtend}")

    lines.append("STATUS:TENTATIVE" if tentative else "STATUS:CONFIRMED")
    if organizer_email:
        lines.append(f"ORGANIZER:mailto:{organizer_email}")
    lines.append("END:VEVENT")
    return lines


def generate_ics(
    events: Sequence[EventRecord],
    tentative: bool,
    organizer_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Serialize events into a single calendar document.

    Args:
        events: Validated events, emitted in the given order
        tentative: Applies STATUS:TENTATIVE (or CONFIRMED) to every event
        organizer_email: Adds an ORGANIZER line when set
        now: Timestamp for DTSTAMP/CREATED/LAST-MODIFIED (defaults to now, UTC)

    Returns:
        CRLF-joined iCalendar text
    """
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime(UTC_FORMAT)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:REQUEST",
    ]
    for event in events:
        lines.extend(_vevent(event, tentative, organizer_email, stamp, generate_uid(now)))
    lines.append("END:VCALENDAR")

    return CRLF.join(fold_line(line) for line in lines)


def validate_ics(content: str) -> List[str]:
    """Structural check of a calendar document. Returns a list of problems."""
    errors: List[str] = []
    lines = unfold_lines(content)

    if not lines or lines[0] != "BEGIN:VCALENDAR":
        errors.append("Missing BEGIN:VCALENDAR")
    if not lines or lines[-1] != "END:VCALENDAR":
        errors.append("Missing END:VCALENDAR")
    if "VERSION:2.0" not in lines:
        errors.append("Missing VERSION:2.0")
    if not any(line.startswith("PRODID:") for line in lines):
        errors.append("Missing PRODID")

    in_event = False
    seen: List[str] = []
    uids = set()
    event_count = 0
    for line in lines:
        if line == "BEGIN:VEVENT":
            if in_event:
                errors.append("Nested BEGIN:VEVENT")
            in_event = True
            seen = []
        elif line == "END:VEVENT":
            if not in_event:
                errors.append("END:VEVENT without BEGIN:VEVENT")
                continue
            in_event = False
            event_count += 1
            for prop in ("UID", "DTSTAMP", "DTSTART"):
                if prop not in seen:
                    errors.append(f"VEVENT {event_count} missing {prop}")
        elif in_event:
            name = line.split(":", 1)[0].split(";", 1)[0]
            seen.append(name)
            if name == "UID":
                uid = line.split(":", 1)[1]
                if uid in uids:
                    errors.append(f"Duplicate UID {uid}")
                uids.add(uid)

    if in_event:
        errors.append("Unterminated VEVENT")
    if event_count == 0:
        errors.append("No VEVENT found")
    return errors
