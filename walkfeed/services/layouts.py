"""Field locators for listing pages.

A layout knows where things live in one concrete listing markup: the item
containers, the incremental-load control, and each field inside an item.
Parsing and cleanup stay in the extractor, so supporting a redesigned page
means adding a layout here and nothing else.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from bs4 import BeautifulSoup, Tag

from walkfeed.services.records import UNKNOWN


class UnknownLayoutError(ValueError):
    pass


def _norm_label(text: str) -> str:
    return (text or "").strip().rstrip(":").strip().lower()


def labeled_value(item: Tag, label: str) -> str:
    """Value of the <dd> that follows the <dt> reading `label`, or UNKNOWN."""
    wanted = _norm_label(label)
    for dt in item.find_all("dt"):
        if _norm_label(dt.get_text(strip=True)) == wanted:
            dd = dt.find_next_sibling("dd")
            if dd is not None:
                value = dd.get_text(strip=True)
                return value or UNKNOWN
            break
    return UNKNOWN


def _text(node: Optional[Tag], separator: str = "") -> Optional[str]:
    if node is None:
        return None
    return node.get_text(separator=separator, strip=True)


class ListingLayout(ABC):
    name: str = "base"
    item_selector: str = ""
    load_more_selector: str = ""

    def items(self, soup: BeautifulSoup) -> List[Tag]:
        return soup.select(self.item_selector)

    @abstractmethod
    def group_name(self, item: Tag) -> str: ...

    @abstractmethod
    def title(self, item: Tag) -> Optional[str]: ...

    @abstractmethod
    def details_href(self, item: Tag) -> Optional[str]: ...

    @abstractmethod
    def difficulty(self, item: Tag) -> str: ...

    @abstractmethod
    def distance(self, item: Tag) -> str: ...

    @abstractmethod
    def date_attribute(self, item: Tag) -> Optional[str]:
        """Machine-readable datetime, if the markup carries one."""

    @abstractmethod
    def date_texts(self, item: Tag) -> List[str]:
        """Human-readable text blocks that may contain the date, most specific first."""

    @abstractmethod
    def location_text(self, item: Tag) -> Optional[str]: ...

    @abstractmethod
    def description(self, item: Tag) -> str: ...


class SearchCardLayout(ListingLayout):
    """Walk search results rendered as `div.search-results-card` cards."""

    name = "search-card"
    item_selector = "div.search-results-card"
    load_more_selector = (
        "button.button-load-more-results, button.btn-load-more, "
        "button[data-v-513ed93a].btn.btn-outline-primary"
    )

    title_link_selector = "h2.h4 > a"
    title_span_selector = "span.rams-text-decoration-pink"
    date_selector = "p.text-left time"
    location_selector = "div.row > div.col-12.mb-2.col > p.text-left.mb-1"
    summary_selector = "div.search-results-summary p"

    def _title_link(self, item: Tag) -> Optional[Tag]:
        return item.select_one(self.title_link_selector)

    def group_name(self, item: Tag) -> str:
        return labeled_value(item, "Group:")

    def title(self, item: Tag) -> Optional[str]:
        link = self._title_link(item)
        if link is None:
            return None
        span = link.select_one(self.title_span_selector)
        return _text(span) or _text(link)

    def details_href(self, item: Tag) -> Optional[str]:
        link = self._title_link(item)
        if link is None:
            return None
        href = (link.get("href") or "").strip()
        return href or None

    def difficulty(self, item: Tag) -> str:
        return labeled_value(item, "Difficulty:")

    def distance(self, item: Tag) -> str:
        return labeled_value(item, "Distance:")

    def date_attribute(self, item: Tag) -> Optional[str]:
        tag = item.select_one(self.date_selector)
        if tag is None:
            return None
        return tag.get("datetime")

    def date_texts(self, item: Tag) -> List[str]:
        out = []
        for sel in (self.date_selector, self.location_selector):
            value = _text(item.select_one(sel), separator=" ")
            if value:
                out.append(value)
        return out

    def location_text(self, item: Tag) -> Optional[str]:
        return _text(item.select_one(self.location_selector), separator=" ")

    def description(self, item: Tag) -> str:
        return _text(item.select_one(self.summary_selector)) or ""


LAYOUTS: Dict[str, Type[ListingLayout]] = {
    SearchCardLayout.name: SearchCardLayout,
}


def get_layout(name: str) -> ListingLayout:
    try:
        return LAYOUTS[(name or "").strip().lower()]()
    except KeyError:
        raise UnknownLayoutError(f"Unknown listing layout '{name}'. Known: {', '.join(sorted(LAYOUTS))}") from None
