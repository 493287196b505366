from typing import AsyncIterator, Optional
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from playwright.async_api import async_playwright, BrowserContext, Page
import structlog

from walkfeed.config import Settings
from walkfeed.services.layouts import ListingLayout

log = structlog.get_logger(__name__)

DEFAULT_UA = (
    "Mozilla/5.0 (Macintosh; Apple Silicon Mac OS X 15_0) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125 Safari/537.36"
)

@dataclass
class RenderResult:
    url: str
    html: Optional[str] = None
    expansions: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

class ListingRenderer(ABC):
    """Turns a listing URL into fully expanded HTML. Must not raise for page failures."""

    @abstractmethod
    async def render(self, url: str, layout: ListingLayout) -> RenderResult: ...

async def expand_listing(page: Page, selector: str, max_expansions: int, settle_ms: int, click_timeout_ms: int = 10000) -> int:
    """
    Activate the listing's "load more" control until it disappears or the bound is hit.
    Returns how many expansions happened.
    """
    expansions = 0
    while expansions < max_expansions:
        button = await page.query_selector(selector)
        if button is None or not await button.is_visible():
            log.debug("load_more_absent", expansions=expansions)
            break
        await button.click(timeout=click_timeout_ms)
        expansions += 1
        log.debug("load_more_clicked", expansions=expansions, settle_ms=settle_ms)
        await page.wait_for_timeout(settle_ms)
    return expansions

@asynccontextmanager
async def browser_context(settings: Settings) -> AsyncIterator[BrowserContext]:
    """One Chromium browser per source; closing the browser closes its pages."""
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=settings.headless)
        try:
            context = await browser.new_context(user_agent=DEFAULT_UA)
            context.set_default_navigation_timeout(settings.navigation_timeout_ms)
            yield context
        finally:
            await browser.close()

class PlaywrightRenderer(ListingRenderer):
    def __init__(self, settings: Settings):
        self.settings = settings

    async def render(self, url: str, layout: ListingLayout) -> RenderResult:
        s = self.settings
        result = RenderResult(url=url)
        try:
            async with browser_context(s) as ctx:
                page = await ctx.new_page()
                try:
                    await page.goto(url, wait_until="networkidle", timeout=s.navigation_timeout_ms)
                except Exception as e:
                    result.error = f"navigation failed: {e}"
                    log.warning("source_navigation_failed", url=url, error=str(e))
                    return result

                if s.initial_settle_ms > 0:
                    await page.wait_for_timeout(s.initial_settle_ms)

                try:
                    result.expansions = await expand_listing(
                        page, layout.load_more_selector, s.max_load_more, s.settle_ms, s.click_timeout_ms
                    )
                except Exception as e:
                    # Keep whatever rendered before the failing expansion
                    result.error = f"expansion failed: {e}"
                    log.warning("source_expansion_failed", url=url, error=str(e))

                result.html = await page.content()
        except Exception as e:
            result.error = result.error or f"render failed: {e}"
            log.warning("source_render_failed", url=url, error=str(e))
        log.info("source_rendered", url=url, expansions=result.expansions, ok=result.ok, size=len(result.html or ""))
        return result
