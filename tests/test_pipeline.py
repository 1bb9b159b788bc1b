"""Tests for NewsPipeline refresh, load-more, views and sentiment."""

import asyncio
import json

import pytest

from conftest import (
    ATOM_DOC,
    ET_FEED,
    EXTRA_RSS_DOC,
    MINT_FEED,
    RSS_DOC,
    FakeSession,
    encoded,
)
from market_news.config import ApiProvider
from market_news.core import NewsPipeline, normalize_batch
from market_news.pagination import LoadMoreStatus
from market_news.parser import RawEntry, Schema


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_pipeline(config, clock=None):
    return NewsPipeline(config, session_factory=FakeSession, clock=clock or Clock())


def serve_feeds(web):
    web.add(RSS_DOC, encoded(ET_FEED))
    web.add(ATOM_DOC, encoded(MINT_FEED))


class TestNormalizeBatch:
    """Tests for normalize_batch."""

    def test_skips_bad_rows_and_sorts(self):
        """Title-less rows are dropped, duplicates removed, newest first."""
        entries = [
            RawEntry(Schema.GNEWS, {"title": "Older", "publishedAt": "2025-01-06T08:00:00Z"}),
            RawEntry(Schema.GNEWS, {"title": ""}),
            RawEntry(Schema.GNEWS, {"title": "Newer", "publishedAt": "2025-01-06T09:00:00Z"}),
            RawEntry(Schema.GNEWS, {"title": "older!", "publishedAt": "2025-01-06T10:00:00Z"}),
        ]
        items = normalize_batch(entries)
        assert [i.title for i in items] == ["Newer", "Older"]
        assert len({i.id for i in items}) == 2


class TestRefresh:
    """Tests for NewsPipeline.refresh."""

    @pytest.mark.asyncio
    async def test_feeds_used_when_apis_unconfigured(self, web, config):
        """With no usable API the feeds supply the items, newest first."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        snap = await pipeline.refresh()
        assert snap.status == "ok"
        assert not snap.is_empty
        assert [i.title for i in snap.items] == [
            "Acme IPO opens for subscription",
            "Sensex climbs 500 points as FII buying returns",
            "RBI holds repo rate amid inflation worries",
        ]
        assert [i.category for i in snap.items] == ["ipo", "markets", "economy"]
        assert len(snap.visible) == 2
        assert snap.visible[0].is_featured
        assert snap.refreshed_at is not None
        assert not snap.is_refreshing

    @pytest.mark.asyncio
    async def test_apis_first_skip_feeds(self, web, config):
        """Items from a structured API mean the feeds are not fetched."""
        config.providers = [
            ApiProvider(name="GNews", base_url="https://gnews.io/api/v4/search", schema="gnews",
                        enabled=True, credential="k"),
        ]
        web.add(json.dumps({"articles": [{"title": "Nifty hits record", "url": "https://g/1"}]}), "gnews.io")
        serve_feeds(web)
        snap = await make_pipeline(config).refresh()
        assert [i.title for i in snap.items] == ["Nifty hits record"]
        assert web.calls_to("relay-") == []

    @pytest.mark.asyncio
    async def test_total_failure_keeps_previous_items(self, web, config):
        """A failed refresh does not wipe good data."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        web.reset()
        snap = await pipeline.refresh()
        assert snap.status == "stale"
        assert len(snap.items) == 3

    @pytest.mark.asyncio
    async def test_total_failure_from_empty(self, web, config):
        """With nothing held, total failure is the empty state, not an exception."""
        snap = await make_pipeline(config).refresh()
        assert snap.status == "empty"
        assert snap.is_empty
        assert snap.items == ()
        assert snap.visible == ()

    @pytest.mark.asyncio
    async def test_refresh_resets_page(self, web, config):
        """A refresh starts again at the first page."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        await pipeline.load_more()
        snap = await pipeline.refresh()
        assert snap.page_index == 1


class TestLoadMore:
    """Tests for NewsPipeline.load_more."""

    @pytest.mark.asyncio
    async def test_expands_locally_before_fetching(self, web, config):
        """Held items are exposed first without any request."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        web.calls.clear()
        result = await pipeline.load_more()
        assert result.status is LoadMoreStatus.EXPANDED
        assert result.visible == 3
        assert web.calls == []

    @pytest.mark.asyncio
    async def test_exhausted_then_timed_retry(self, web, config):
        """Nothing new reports exhaustion, holds fetching back, then retries."""
        clock = Clock()
        serve_feeds(web)
        pipeline = make_pipeline(config, clock)
        await pipeline.refresh()
        await pipeline.load_more()

        result = await pipeline.load_more()
        assert result.status is LoadMoreStatus.EXHAUSTED
        assert result.can_retry

        web.calls.clear()
        result = await pipeline.load_more()
        assert result.status is LoadMoreStatus.EXHAUSTED
        assert web.calls == []

        clock.now += config.exhausted_retry_after
        web.reset()
        web.add(EXTRA_RSS_DOC, encoded(ET_FEED))
        serve_feeds(web)
        result = await pipeline.load_more()
        assert result.status is LoadMoreStatus.FETCHED
        assert result.added == 1
        assert result.visible == 4
        titles = [i.title for i in pipeline.snapshot().items]
        assert titles[-1] == "Bitcoin ETF inflows hit new high"

    @pytest.mark.asyncio
    async def test_unavailable_when_all_sources_fail(self, web, config):
        """Every source failing is reported apart from exhaustion and does not close the gate."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        await pipeline.load_more()
        web.reset()

        result = await pipeline.load_more()
        assert result.status is LoadMoreStatus.UNAVAILABLE
        web.calls.clear()
        await pipeline.load_more()
        assert web.calls != []

    @pytest.mark.asyncio
    async def test_new_items_outside_filter_are_kept(self, web, config):
        """Items for other categories are merged but do not count as added."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        pipeline.set_category("ipo")
        web.reset()
        web.add(EXTRA_RSS_DOC, encoded(ET_FEED))
        result = await pipeline.load_more()
        assert result.status is LoadMoreStatus.EXHAUSTED
        assert len(pipeline.snapshot().items) == 4

    @pytest.mark.asyncio
    async def test_category_query_used(self, web, config):
        """Load-more asks structured APIs with the category's search terms."""
        config.providers = [
            ApiProvider(name="GNews", base_url="https://gnews.io/api/v4/search", schema="gnews",
                        enabled=True, credential="k"),
        ]
        web.add(json.dumps({"articles": [{"title": "Acme IPO prices at top end"}]}), "gnews.io")
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        pipeline.set_category("ipo")
        web.calls.clear()
        await pipeline.load_more()
        assert "q=IPO+initial+public+offering+india" in web.calls_to("gnews.io")[0]


class TestViews:
    """Tests for category, search, ticker and subscriptions."""

    @pytest.mark.asyncio
    async def test_category_filter(self, web, config):
        """The window only shows the chosen category."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        snap = pipeline.set_category("economy")
        assert [i.category for i in snap.visible] == ["economy"]
        with pytest.raises(ValueError):
            pipeline.set_category("sports")

    @pytest.mark.asyncio
    async def test_search(self, web, config):
        """Search matches title or description and resets the category."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        pipeline.set_category("ipo")
        snap = pipeline.search("repo rate")
        assert snap.category == "all"
        assert [i.title for i in snap.visible] == ["RBI holds repo rate amid inflation worries"]
        snap = pipeline.set_category("all")
        assert snap.search is None
        assert len(snap.visible) == 2

    @pytest.mark.asyncio
    async def test_ticker(self, web, config):
        """The ticker lists the first items of the canonical set."""
        serve_feeds(web)
        config.ticker_size = 2
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        assert len(pipeline.ticker()) == 2

    @pytest.mark.asyncio
    async def test_subscribers_notified(self, web, config):
        """Subscribers see the refresh start and finish; a failing one is tolerated."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        seen = []

        def broken(_snap):
            raise RuntimeError("boom")

        pipeline.subscribe(broken)
        unsubscribe = pipeline.subscribe(seen.append)
        await pipeline.refresh()
        assert [s.is_refreshing for s in seen] == [True, False]
        assert len(seen[-1].items) == 3

        unsubscribe()
        pipeline.set_category("ipo")
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, web, config):
        """Snapshots do not change with later state."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        await pipeline.refresh()
        snap = pipeline.snapshot()
        pipeline.state.items.clear()
        assert len(snap.items) == 3


class TestAutoRefresh:
    """Tests for the auto-refresh guard."""

    @pytest.mark.asyncio
    async def test_tick_skipped_while_refreshing(self, web, config):
        """An auto tick during a running refresh does nothing."""
        gate = asyncio.Event()

        async def slow(_url):
            await gate.wait()
            return RSS_DOC

        web.add(slow, encoded(ET_FEED))
        pipeline = make_pipeline(config)
        manual = asyncio.ensure_future(pipeline.refresh())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert pipeline.is_refreshing

        assert await pipeline.auto_refresh_tick() is False

        gate.set()
        snap = await manual
        assert snap.status == "ok"
        assert not pipeline.is_refreshing

    @pytest.mark.asyncio
    async def test_tick_refreshes_when_idle(self, web, config):
        """An idle pipeline refreshes on tick."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        assert await pipeline.auto_refresh_tick() is True
        assert len(pipeline.snapshot().items) == 3

    @pytest.mark.asyncio
    async def test_start_and_stop(self, web, config):
        """The background loop refreshes on its interval and stops when asked."""
        serve_feeds(web)
        pipeline = make_pipeline(config)
        task = pipeline.start_auto_refresh(interval=0.01)
        for _ in range(100):
            if pipeline.snapshot().items:
                break
            await asyncio.sleep(0.01)
        pipeline.stop_auto_refresh()
        assert pipeline.snapshot().items
        with pytest.raises(asyncio.CancelledError):
            await task


class TestSentiment:
    """Tests for NewsPipeline.sentiment."""

    @pytest.mark.asyncio
    async def test_reading_with_partial_indices(self, web, config):
        """Failed symbols are left out; the rest drive market and breadth."""
        chart = {"chart": {"result": [{"meta": {"regularMarketPrice": 103.0, "chartPreviousClose": 100.0}}]}}
        web.add(json.dumps(chart), "%5ENSEI")
        web.add(json.dumps(chart), "%5EBSESN")
        pipeline = make_pipeline(config)
        reading = await pipeline.sentiment()
        assert pipeline.index_snapshots["bankNifty"] is None
        assert reading.market == 100
        assert reading.breadth == 100
        assert reading.news == 50
        assert reading.score == 80
        assert reading.label == "Extremely Bullish"

    @pytest.mark.asyncio
    async def test_neutral_without_data(self, web, config):
        """No items and no indices give exactly 50."""
        reading = await make_pipeline(config).sentiment()
        assert reading.score == 50
        assert reading.label == "Neutral"
