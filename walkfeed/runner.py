"""Scraper entry point: render every source, extract, deliver one batch.

    python -m walkfeed.runner                       # sources from WALKFEED_SOURCE_URLS
    python -m walkfeed.runner URL [URL ...] --dry-run --output walks.json
"""
from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

import structlog

from walkfeed.config import Settings, get_settings, split_urls
from walkfeed.logging_config import configure_logging
from walkfeed.services.dates import resolve_zone
from walkfeed.services.extract import extract_walks
from walkfeed.services.fetch import ListingRenderer, PlaywrightRenderer
from walkfeed.services.layouts import ListingLayout, UnknownLayoutError, get_layout
from walkfeed.services.records import WalkRecord
from walkfeed.services.transport import DeliveryReport, deliver_batch

log = structlog.get_logger(__name__)

Deliver = Callable[..., Awaitable[DeliveryReport]]


@dataclass
class SourceOutcome:
    url: str
    records: List[WalkRecord] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RunSummary:
    sources: List[SourceOutcome]
    records: List[WalkRecord]
    delivery: Optional[DeliveryReport] = None

    @property
    def ok(self) -> bool:
        return self.delivery is None or not self.delivery.attempted or self.delivery.delivered


async def scrape_source(url: str, renderer: ListingRenderer, layout: ListingLayout, settings: Settings) -> SourceOutcome:
    """Render and extract one source. Never raises: failures become an empty outcome."""
    log.info("source_started", url=url)
    try:
        rendered = await asyncio.wait_for(renderer.render(url, layout), timeout=settings.source_timeout_s)
    except asyncio.TimeoutError:
        log.warning("source_timed_out", url=url, timeout_s=settings.source_timeout_s)
        return SourceOutcome(url=url, error=f"timed out after {settings.source_timeout_s}s")
    except Exception as e:
        log.warning("source_failed", url=url, error=str(e))
        return SourceOutcome(url=url, error=str(e))

    try:
        records = extract_walks(rendered.html, layout, url, resolve_zone(settings.timezone))
    except Exception as e:
        log.warning("source_extraction_failed", url=url, error=str(e))
        return SourceOutcome(url=url, error=str(e))
    return SourceOutcome(url=url, records=records, error=rendered.error)


async def run_pipeline(
    urls: Sequence[str],
    renderer: ListingRenderer,
    layout: ListingLayout,
    settings: Settings,
    deliver: Deliver = deliver_batch,
    dry_run: bool = False,
) -> RunSummary:
    limit = asyncio.Semaphore(max(1, settings.concurrency))

    async def bounded(url: str) -> SourceOutcome:
        async with limit:
            return await scrape_source(url, renderer, layout, settings)

    # gather keeps source order; the batch is assembled here and nowhere else
    outcomes = list(await asyncio.gather(*(bounded(u) for u in urls)))
    batch: List[WalkRecord] = [r for o in outcomes for r in o.records]
    summary = RunSummary(sources=outcomes, records=batch)

    log.info(
        "scrape_finished",
        sources=len(outcomes),
        failed_sources=sum(1 for o in outcomes if o.error),
        walks=len(batch),
    )
    if dry_run:
        log.info("delivery_skipped_dry_run", walks=len(batch))
        return summary

    summary.delivery = await deliver(batch, settings.ingest_endpoint, timeout=settings.transport_timeout_s)
    return summary


def write_batch(records: Sequence[WalkRecord], path: str) -> str:
    with open(path, "w", encoding="utf-8") as f:
        json.dump([r.to_payload() for r in records], f, ensure_ascii=False, indent=2)
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape walk listings and deliver them to the ingestion API")
    parser.add_argument("urls", nargs="*", help="Listing URLs (default: configured sources)")
    parser.add_argument("--endpoint", help="Ingestion endpoint URL")
    parser.add_argument("--layout", help="Listing layout name")
    parser.add_argument("--max-load-more", type=int, help="Maximum 'load more' expansions per source")
    parser.add_argument("--concurrency", type=int, help="Sources rendered at once")
    parser.add_argument("--dry-run", action="store_true", help="Scrape but do not deliver")
    parser.add_argument("--output", help="Also write the batch as a JSON array to this path")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    base = get_settings()
    configure_logging(base.log_level, base.log_json)

    settings = base.with_overrides(
        ingest_endpoint=args.endpoint,
        layout=args.layout,
        max_load_more=args.max_load_more,
        concurrency=args.concurrency,
        headless=False if args.headed else None,
    )
    urls = split_urls(" ".join(args.urls)) if args.urls else settings.source_urls
    if not urls:
        log.error("no_sources_configured", hint="pass URLs or set WALKFEED_SOURCE_URLS")
        return 2
    try:
        layout = get_layout(settings.layout)
    except UnknownLayoutError as e:
        log.error("layout_invalid", error=str(e))
        return 2

    summary = asyncio.run(
        run_pipeline(urls, PlaywrightRenderer(settings), layout, settings, dry_run=args.dry_run)
    )
    if args.output:
        write_batch(summary.records, args.output)
        log.info("batch_written", path=args.output, walks=len(summary.records))
    log.info("scraper_finished", ok=summary.ok)
    return 0 if summary.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
