from __future__ import annotations
import re
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December|"
    "Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec"
)
WEEKDAYS = "Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday"

# "12 March 2025", optionally followed by "10:00am", "10:00 pm", "14:30" or "9.15am"
DATE_TEXT_RE = re.compile(
    r"(?P<date>\d{1,2}\s+(?:" + MONTHS + r")\.?\s+\d{4})"
    r"(?:[\s,]+(?:at\s+)?(?P<time>\d{1,2}[:.]\d{2}(?:\s*(?:am|pm))?))?",
    re.IGNORECASE,
)

DATE_FORMATS = ("%d %B %Y", "%d %b %Y")
TIME_FORMATS_12H = ("%I:%M %p",)
TIME_FORMATS_24H = ("%H:%M",)


def resolve_zone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def _to_utc(dt: datetime, zone: tzinfo) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone)
    return dt.astimezone(timezone.utc)


def parse_iso_attribute(value: Optional[str], zone: tzinfo = timezone.utc) -> Optional[datetime]:
    """Machine-readable datetime attribute (ISO-8601). None when absent or unparseable."""
    if not value or not value.strip():
        return None
    try:
        return _to_utc(datetime.fromisoformat(value.strip()), zone)
    except (ValueError, OverflowError):
        return None


def _normalize_time(t: str) -> str:
    t = t.strip().lower().replace(".", ":")
    m = re.match(r"^(\d{1,2}:\d{2})\s*(am|pm)$", t)
    if m:
        return f"{m.group(1)} {m.group(2)}"
    return t


def _parse_date_part(date_str: str) -> Optional[datetime]:
    date_str = re.sub(r"\s+", " ", date_str.replace(".", "")).strip()
    date_str = re.sub(r"\bsept\b", "Sep", date_str, flags=re.IGNORECASE)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue
    return None


def _parse_time_part(time_str: str):
    t = _normalize_time(time_str)
    formats = TIME_FORMATS_12H if t.endswith(("am", "pm")) else TIME_FORMATS_24H
    for fmt in formats:
        try:
            return datetime.strptime(t, fmt).time()
        except ValueError:
            continue
    return None


def parse_free_text(text: Optional[str], zone: tzinfo = timezone.utc) -> Optional[datetime]:
    """Find the first 'D Month YYYY [time]' in free text.

    A missing or unreadable time of day falls back to midnight in `zone`.
    """
    if not text:
        return None
    for m in DATE_TEXT_RE.finditer(text):
        day = _parse_date_part(m.group("date"))
        if day is None:
            continue
        if m.group("time"):
            tod = _parse_time_part(m.group("time"))
            if tod is not None:
                day = day.replace(hour=tod.hour, minute=tod.minute)
        try:
            return _to_utc(day.replace(second=0, microsecond=0), zone)
        except OverflowError:
            continue
    return None


def parse_walk_date(attribute: Optional[str], texts: Iterable[Optional[str]] = (), zone: tzinfo = timezone.utc) -> Optional[datetime]:
    """ISO attribute first, then each free-text candidate in order. Returns aware UTC or None."""
    parsed = parse_iso_attribute(attribute, zone)
    if parsed is not None:
        return parsed
    for text in texts:
        parsed = parse_free_text(text, zone)
        if parsed is not None:
            return parsed
    return None
