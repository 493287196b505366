# tests/test_pipeline.py
import asyncio
import json

from walkfeed.config import Settings, read_sources_file, split_urls
from walkfeed.runner import main, run_pipeline, write_batch
from walkfeed.services.fetch import ListingRenderer, RenderResult
from walkfeed.services.layouts import SearchCardLayout
from walkfeed.services.transport import DeliveryReport

CARD = """
<div class="search-results-card">
  <h2 class="h4"><a href="/w/{slug}"><span class="rams-text-decoration-pink">{title}</span></a></h2>
  <p class="text-left"><time datetime="2025-05-0{day}T09:00:00+00:00">May</time></p>
</div>
"""


def _page(*titles):
    cards = "".join(CARD.format(slug=t.lower(), title=t, day=i + 1) for i, t in enumerate(titles))
    return f"<html><body>{cards}</body></html>"


class FakeRenderer(ListingRenderer):
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def render(self, url, layout):
        self.calls.append(url)
        page = self.pages[url]
        if isinstance(page, Exception):
            raise page
        if page == "hang":
            await asyncio.sleep(30)
        return RenderResult(url=url, html=page)


class FakeDeliver:
    def __init__(self):
        self.calls = []

    async def __call__(self, records, endpoint, timeout=60):
        self.calls.append((list(records), endpoint, timeout))
        return DeliveryReport(attempted=bool(records), delivered=bool(records), count=len(records))


SETTINGS = Settings(ingest_endpoint="http://ingest.test/api/walks", transport_timeout_s=12)


def test_one_delivery_for_all_sources_in_order():
    renderer = FakeRenderer({
        "https://a.test/list": _page("Alpha", "Beta"),
        "https://b.test/list": _page("Gamma"),
    })
    deliver = FakeDeliver()
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), SETTINGS, deliver=deliver))

    assert len(deliver.calls) == 1
    records, endpoint, timeout = deliver.calls[0]
    assert [r.title for r in records] == ["Alpha", "Beta", "Gamma"]
    assert endpoint == "http://ingest.test/api/walks"
    assert timeout == 12
    assert summary.ok
    assert [r.title for r in summary.records] == ["Alpha", "Beta", "Gamma"]


def test_failed_source_contributes_nothing():
    renderer = FakeRenderer({
        "https://a.test/list": RuntimeError("browser crashed"),
        "https://b.test/list": _page("Gamma"),
    })
    deliver = FakeDeliver()
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), SETTINGS, deliver=deliver))
    [records] = [c[0] for c in deliver.calls]
    assert [r.title for r in records] == ["Gamma"]
    assert summary.sources[0].error == "browser crashed"
    assert summary.sources[1].error is None


def test_slow_source_times_out():
    renderer = FakeRenderer({"https://a.test/list": "hang", "https://b.test/list": _page("Gamma")})
    settings = SETTINGS.with_overrides(source_timeout_s=1, concurrency=2)
    deliver = FakeDeliver()
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), settings, deliver=deliver))
    assert "timed out" in summary.sources[0].error
    assert [r.title for r in deliver.calls[0][0]] == ["Gamma"]


def test_empty_batch_still_goes_through_deliver_once():
    renderer = FakeRenderer({"https://a.test/list": "<html><body>No walks</body></html>"})
    deliver = FakeDeliver()
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), SETTINGS, deliver=deliver))
    assert len(deliver.calls) == 1
    assert deliver.calls[0][0] == []
    assert summary.records == []
    assert summary.ok


def test_dry_run_skips_delivery():
    renderer = FakeRenderer({"https://a.test/list": _page("Alpha")})
    deliver = FakeDeliver()
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), SETTINGS, deliver=deliver, dry_run=True))
    assert deliver.calls == []
    assert summary.delivery is None
    assert len(summary.records) == 1


def test_failed_delivery_marks_run_not_ok():
    async def refuse(records, endpoint, timeout=60):
        return DeliveryReport(attempted=True, error="connection refused")

    renderer = FakeRenderer({"https://a.test/list": _page("Alpha")})
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), SETTINGS, deliver=refuse))
    assert not summary.ok


def test_write_batch(tmp_path):
    renderer = FakeRenderer({"https://a.test/list": _page("Alpha")})
    summary = asyncio.run(run_pipeline(list(renderer.pages), renderer, SearchCardLayout(), SETTINGS, dry_run=True))
    out = write_batch(summary.records, str(tmp_path / "walks.json"))
    with open(out, encoding="utf-8") as f:
        data = json.load(f)
    assert data[0]["title"] == "Alpha"
    assert data[0]["details_url"] == "https://a.test/w/alpha"


def test_split_urls_keeps_query_commas():
    text = (
        "https://a.test/find?walk_length=0,998.9&page=1, https://b.test/list\n"
        "https://a.test/find?walk_length=0,998.9&page=1"
    )
    assert split_urls(text) == (
        "https://a.test/find?walk_length=0,998.9&page=1",
        "https://b.test/list",
    )
    assert split_urls("") == ()
    assert split_urls(None) == ()


def test_read_sources_file(tmp_path):
    p = tmp_path / "sources.txt"
    p.write_text("# listings\nhttps://a.test/list\n\nhttps://b.test/list#results\nhttps://a.test/list\n", encoding="utf-8")
    assert read_sources_file(str(p)) == ("https://a.test/list", "https://b.test/list#results")


def test_main_without_sources_exits_2(monkeypatch):
    monkeypatch.setattr("walkfeed.runner.get_settings", lambda: Settings())
    assert main([]) == 2


def test_main_with_unknown_layout_exits_2(monkeypatch):
    monkeypatch.setattr("walkfeed.runner.get_settings", lambda: Settings())
    assert main(["https://a.test/list", "--layout", "tabular"]) == 2
