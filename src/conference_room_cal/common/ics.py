from __future__ import annotations

import hashlib
import io
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from zoneinfo import ZoneInfo

from conference_room_cal.common.event_model import EventRecord
from conference_room_cal.common.folding import DEFAULT_MAX_WIDTH, FoldingWriter
from conference_room_cal.common.times import format_utc, parse_compact_time

DEFAULT_PRODID = "pff"
NO_DESCRIPTION = "No Description"

_ESCAPES = (
    ("\\", "\\\\"),
    ("\n", "\\n"),
    (";", "\\;"),
    (",", "\\,"),
)
_UNESCAPE_PATTERN = re.compile(r"\\([\\;,nN])")


@dataclass(frozen=True)
class RenderContext:
    timezone: ZoneInfo
    conference_start: datetime
    conference_end: datetime
    end_fallback: Literal["start", "conference_end"] = "start"
    link_mode: Literal["override", "append"] = "override"
    prodid: str = DEFAULT_PRODID
    fold_width: int = DEFAULT_MAX_WIDTH


def escape_text(value: str) -> str:
    # Backslash first, so the backslashes added below stay single.
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def unescape_text(value: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        char = match.group(1)
        return "\n" if char in "nN" else char

    return _UNESCAPE_PATTERN.sub(_replace, value)


def event_uid(event: EventRecord) -> str:
    h = hashlib.sha256()
    h.update(event.start.encode("utf-8"))
    h.update(event.title.encode("utf-8"))
    h.update(event.place.encode("utf-8"))
    return h.hexdigest()


def event_start(event: EventRecord, context: RenderContext) -> datetime:
    return parse_compact_time(event.start, context.conference_start, context.timezone)


def event_end(event: EventRecord, context: RenderContext) -> datetime:
    if context.end_fallback == "conference_end":
        fallback = context.conference_end
    else:
        fallback = event_start(event, context)
    return parse_compact_time(event.end, fallback, context.timezone)


def event_summary(event: EventRecord) -> str:
    summary = f'"{event.title}"'
    if event.speaker:
        summary += f" - {event.speaker}"
    if event.affiliation and event.affiliation != event.speaker:
        summary += f" ({event.affiliation})"
    return summary


def event_description(
    event: EventRecord, link_mode: Literal["override", "append"] = "override"
) -> str:
    description = event.long_desc or event.desc or NO_DESCRIPTION
    if not event.link:
        return description
    if link_mode == "append":
        return f"{description}\n\n{event.link}"
    # Upstream feeds have always shown only the link once one is present.
    return f"\n\n{event.link}"


def event_properties(
    event: EventRecord, context: RenderContext, now: datetime
) -> list[tuple[str, str]]:
    return [
        ("BEGIN", "VEVENT"),
        ("DTSTAMP", format_utc(now)),
        ("DTSTART", format_utc(event_start(event, context))),
        ("DTEND", format_utc(event_end(event, context))),
        ("SUMMARY", event_summary(event)),
        ("DESCRIPTION", event_description(event, context.link_mode)),
        ("LOCATION", event.place),
        ("UID", event_uid(event)),
        ("END", "VEVENT"),
    ]


def write_property(writer: FoldingWriter, key: str, value: str) -> None:
    writer.write(f"{key}:")
    writer.write(escape_text(value))
    writer.write("\r\n")


def write_vevent(
    writer: FoldingWriter, event: EventRecord, context: RenderContext, now: datetime
) -> None:
    for key, value in event_properties(event, context, now):
        write_property(writer, key, value)


def build_ics(
    events: Iterable[EventRecord],
    context: RenderContext,
    now: datetime | None = None,
) -> bytes:
    """Render ``events`` as one VCALENDAR document, in the order given."""
    now = now or datetime.now(UTC)
    buf = io.BytesIO()
    writer = FoldingWriter(buf, context.fold_width)

    write_property(writer, "BEGIN", "VCALENDAR")
    write_property(writer, "VERSION", "2.0")
    write_property(writer, "PRODID", context.prodid)
    for event in events:
        write_vevent(writer, event, context, now)
    write_property(writer, "END", "VCALENDAR")

    writer.flush()
    return buf.getvalue()
