from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Callable, Generic, List, Optional, TypeVar
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup, Tag

from walkfeed.services.dates import MONTHS, WEEKDAYS, parse_walk_date
from walkfeed.services.layouts import ListingLayout
from walkfeed.services.records import NOT_SPECIFIED, UNKNOWN, WalkRecord

log = structlog.get_logger(__name__)

T = TypeVar("T")

LOCATION_PREFIXES = ("Start:", "Starting point:", "Meeting point:")

WEEKDAY_DATE_RE = re.compile(
    r"(?:" + WEEKDAYS + r"),?\s+\d{1,2}\s+\w+\.?\s+\d{4}", re.IGNORECASE
)
PLAIN_DATE_RE = re.compile(r"\b\d{1,2}\s+(?:" + MONTHS + r")\.?\s+\d{4}\b", re.IGNORECASE)
# "9.30am" is a time, "1.50" on its own is not
TIME_RE = re.compile(r"\b\d{1,2}:\d{2}(?:\s*(?:am|pm))?|\b\d{1,2}\.\d{2}\s*(?:am|pm)\b", re.IGNORECASE)


@dataclass(frozen=True)
class ItemOutcome(Generic[T]):
    """Result of extracting one listing item: a value or the error that replaced it."""

    index: int
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def attempt(index: int, fn: Callable[..., T], *args) -> ItemOutcome[T]:
    try:
        return ItemOutcome(index=index, value=fn(*args))
    except Exception as e:
        return ItemOutcome(index=index, error=f"{type(e).__name__}: {e}")


def clean_location(text: Optional[str]) -> str:
    """Strip boilerplate prefixes plus embedded dates/times from a location block."""
    if not text:
        return NOT_SPECIFIED
    s = text
    for prefix in LOCATION_PREFIXES:
        s = re.sub(re.escape(prefix), " ", s, flags=re.IGNORECASE)
    s = WEEKDAY_DATE_RE.sub(" ", s)
    s = PLAIN_DATE_RE.sub(" ", s)
    s = TIME_RE.sub(" ", s)
    s = re.sub(r"\s+", " ", s).strip(" ,;-–|")
    return s or NOT_SPECIFIED


def _resolve_url(page_url: str, href: Optional[str]) -> str:
    if not href:
        return UNKNOWN
    return urljoin(page_url, href)


def extract_item(item: Tag, layout: ListingLayout, page_url: str, zone: tzinfo = timezone.utc) -> WalkRecord:
    walk_date = parse_walk_date(layout.date_attribute(item), layout.date_texts(item), zone)
    return WalkRecord.build(
        title=layout.title(item) or UNKNOWN,
        details_url=_resolve_url(page_url, layout.details_href(item)),
        walk_date=walk_date,
        group_name=layout.group_name(item),
        difficulty=layout.difficulty(item),
        distance=layout.distance(item),
        location=clean_location(layout.location_text(item)),
        description=layout.description(item),
    )


def fold_outcomes(outcomes: List[ItemOutcome[WalkRecord]], page_url: str) -> List[WalkRecord]:
    records: List[WalkRecord] = []
    for outcome in outcomes:
        if outcome.ok:
            records.append(outcome.value)
        else:
            log.warning("walk_item_skipped", url=page_url, index=outcome.index, error=outcome.error)
    return records


def extract_walks(html: Optional[str], layout: ListingLayout, page_url: str, zone: tzinfo = timezone.utc) -> List[WalkRecord]:
    """
    Parse rendered listing HTML into walk records, in page order.
    A malformed item is logged and skipped; the rest of the page still counts.
    """
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    items = layout.items(soup)
    if not items:
        log.info("no_walk_items_found", url=page_url, layout=layout.name)
        return []

    outcomes = [attempt(i, extract_item, item, layout, page_url, zone) for i, item in enumerate(items)]
    records = fold_outcomes(outcomes, page_url)
    log.info("walks_extracted", url=page_url, found=len(items), extracted=len(records))
    return records
