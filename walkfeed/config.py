from __future__ import annotations
import os
import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Optional, Tuple

DEFAULT_DB_URL = "sqlite+aiosqlite:///./walkfeed.db"
DEFAULT_INGEST_ENDPOINT = "http://localhost:8000/api/walks"

# Commas only separate when another URL follows; query strings may contain commas
_URL_SPLIT_RE = re.compile(r"\s+|,(?=\s*https?://)")


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def split_urls(text: Optional[str]) -> Tuple[str, ...]:
    """Split a comma/whitespace separated list of URLs, dropping blanks and duplicates."""
    out = []
    for part in _URL_SPLIT_RE.split(text or ""):
        part = part.strip()
        if part and part not in out:
            out.append(part)
    return tuple(out)


def read_sources_file(path: str) -> Tuple[str, ...]:
    """One URL per line; blank lines and lines starting with '#' are ignored."""
    urls = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if s and not s.startswith("#") and s not in urls:
                urls.append(s)
    return tuple(urls)


@dataclass(frozen=True)
class Settings:
    db_url: str = DEFAULT_DB_URL
    source_urls: Tuple[str, ...] = field(default_factory=tuple)
    ingest_endpoint: str = DEFAULT_INGEST_ENDPOINT
    layout: str = "search-card"

    # Pagination / rendering bounds
    max_load_more: int = 5
    navigation_timeout_ms: int = 30000
    initial_settle_ms: int = 7000
    settle_ms: int = 4000
    click_timeout_ms: int = 10000
    source_timeout_s: int = 180
    headless: bool = True
    concurrency: int = 1

    transport_timeout_s: int = 60
    timezone: str = "UTC"

    cors_origins: Tuple[str, ...] = ("*",)

    log_level: str = "INFO"
    log_json: bool = False

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with the non-None keyword overrides applied (CLI flags)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_settings() -> Settings:
    sources = split_urls(os.getenv("WALKFEED_SOURCE_URLS"))
    sources_file = os.getenv("WALKFEED_SOURCES_FILE")
    if sources_file:
        extra = read_sources_file(sources_file)
        sources = sources + tuple(u for u in extra if u not in sources)

    origins = tuple(o.strip() for o in (os.getenv("WALKFEED_CORS_ORIGINS") or "*").split(",") if o.strip())

    return Settings(
        db_url=os.getenv("WALKFEED_DB_URL", DEFAULT_DB_URL),
        source_urls=sources,
        ingest_endpoint=os.getenv("WALKFEED_INGEST_ENDPOINT", DEFAULT_INGEST_ENDPOINT),
        layout=os.getenv("WALKFEED_LAYOUT", "search-card"),
        max_load_more=max(0, _int("WALKFEED_MAX_LOAD_MORE", 5)),
        navigation_timeout_ms=_int("WALKFEED_NAVIGATION_TIMEOUT_MS", 30000),
        initial_settle_ms=_int("WALKFEED_INITIAL_SETTLE_MS", 7000),
        settle_ms=_int("WALKFEED_SETTLE_MS", 4000),
        click_timeout_ms=_int("WALKFEED_CLICK_TIMEOUT_MS", 10000),
        source_timeout_s=_int("WALKFEED_SOURCE_TIMEOUT_S", 180),
        headless=_bool("WALKFEED_HEADLESS", True),
        concurrency=max(1, _int("WALKFEED_CONCURRENCY", 1)),
        transport_timeout_s=_int("WALKFEED_TRANSPORT_TIMEOUT_S", 60),
        timezone=os.getenv("WALKFEED_TIMEZONE", "UTC"),
        cors_origins=origins or ("*",),
        log_level=os.getenv("WALKFEED_LOG_LEVEL", "INFO"),
        log_json=_bool("WALKFEED_LOG_JSON", False),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
