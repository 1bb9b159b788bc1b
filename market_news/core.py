from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import aiohttp

from . import http
from .config import PipelineConfig
from .dedup import deduplicate, sort_by_recency
from .exceptions import NoDataAvailable
from .fetcher import SourceBatch, fetch_many
from .indices import fetch_index_snapshots
from .models import IndexSnapshot, NewsItem
from .normalizer import normalize
from .pagination import ExhaustionGate, LoadMoreResult, LoadMoreStatus
from .parser import RawEntry
from .providers import StructuredApiFetcher
from .relay import RelayPool
from .sentiment import SentimentReading, analyze
from .state import STATUS_EMPTY, STATUS_STALE, AggregateState, PipelineSnapshot, Subscriber


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], aiohttp.ClientSession]


def normalize_batch(entries: Iterable[RawEntry], ingested_at: Optional[datetime] = None) -> List[NewsItem]:
    """Normalize raw entries, drop unusable rows and near-duplicates, newest first."""
    ingested_at = ingested_at or datetime.now(timezone.utc)
    items = []
    for ordinal, raw in enumerate(entries):
        try:
            items.append(normalize(raw.data, raw.schema, ordinal=ordinal, ingested_at=ingested_at, source=raw.source))
        except ValueError as e:
            # Skip malformed rows
            logger.debug("stage=normalize schema=%s skipped: %s", raw.schema.value, e)
    return sort_by_recency(deduplicate(items))


class NewsPipeline:
    """
    High-level API: fetch market news and keep the canonical item set.

    Refresh: structured APIs → (feeds, if the APIs gave nothing) → normalize →
    deduplicate → sort (newest first) → replace the set unless the fetch came back empty.

    Refresh and load-more cycles run one at a time; network calls inside a
    cycle run concurrently.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        session_factory: SessionFactory = http.new_session,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or PipelineConfig()
        self.relays = RelayPool(self.config.relays)
        self.apis = StructuredApiFetcher(self.config.providers, timeout=self.config.api_timeout)
        self.state = AggregateState(self.relays, page_size=self.config.page_size)
        self.index_snapshots: Dict[str, Optional[IndexSnapshot]] = {}
        self.is_refreshing = False
        self._session_factory = session_factory
        self._lock = asyncio.Lock()
        self._gate = ExhaustionGate(self.config.exhausted_retry_after, clock=clock)
        self._auto_task: Optional[asyncio.Task] = None

    # -- reads -----------------------------------------------------------

    def snapshot(self) -> PipelineSnapshot:
        return self.state.snapshot(self.is_refreshing)

    def ticker(self) -> Tuple[NewsItem, ...]:
        return tuple(self.state.items[: self.config.ticker_size])

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.state.subscribe(callback)

    # -- view actions ----------------------------------------------------

    def set_category(self, category: str) -> PipelineSnapshot:
        self.state.set_category(category)
        self.state.notify(self.is_refreshing)
        return self.snapshot()

    def search(self, topic: str) -> PipelineSnapshot:
        self.state.set_search(topic)
        self.state.notify(self.is_refreshing)
        return self.snapshot()

    # -- fetch cycles ----------------------------------------------------

    async def _fetch_feeds(self, session: aiohttp.ClientSession) -> SourceBatch:
        return await fetch_many(session, self.relays, self.config.feeds, timeout=self.config.feed_timeout)

    async def refresh(self) -> PipelineSnapshot:
        """
        Run a full refresh. Never raises for upstream trouble: when every source
        fails the previous items are kept (status "stale") or the state stays
        empty (status "empty").
        """
        async with self._lock:
            self.is_refreshing = True
            self.state.notify(True)
            try:
                items = await self._refresh_items()
                self.state.replace_items(items, datetime.now(timezone.utc))
                self._gate.reset()
                logger.info("stage=refresh items=%d", len(items))
            except NoDataAvailable as e:
                self.state.status = STATUS_STALE if self.state.items else STATUS_EMPTY
                logger.warning("stage=refresh %s; keeping %d items", e, len(self.state.items))
            except Exception:
                self.state.status = STATUS_STALE if self.state.items else STATUS_EMPTY
                logger.exception("stage=refresh unexpected failure")
            finally:
                self.is_refreshing = False
            self.state.notify(False)
            return self.snapshot()

    async def _refresh_items(self) -> List[NewsItem]:
        async with self._session_factory() as session:
            batch = await self.apis.fetch(session)
            items = normalize_batch(batch.entries)
            if not items:
                if batch.attempted:
                    logger.info("stage=refresh APIs gave nothing, trying feeds")
                feeds = await self._fetch_feeds(session)
                batch.extend(feeds)
                items = normalize_batch(feeds.entries)
        if not items:
            raise NoDataAvailable(
                f"No items from {batch.attempted} sources ({len(batch.failed)} failed)"
            )
        return items

    async def load_more(self) -> LoadMoreResult:
        """
        Grow the visible window by one page, fetching only when everything held
        locally for the current filter is already visible.
        """
        async with self._lock:
            result = await self._load_more()
            logger.info("stage=load_more status=%s added=%d visible=%d",
                        result.status.value, result.added, result.visible)
            self.state.notify(self.is_refreshing)
            return result

    async def _load_more(self) -> LoadMoreResult:
        state = self.state
        if not state.fully_exposed():
            state.page_index += 1
            return LoadMoreResult(LoadMoreStatus.EXPANDED, visible=len(state.visible()))

        visible = len(state.visible())
        if self._gate.closed:
            return LoadMoreResult(LoadMoreStatus.EXHAUSTED, visible=visible)

        query = self.config.category_queries.get(state.category, self.config.default_query)
        try:
            async with self._session_factory() as session:
                batch = await self.apis.fetch(session, query=query, continuation=True)
                batch.extend(await self._fetch_feeds(session))
        except Exception:
            logger.exception("stage=load_more unexpected failure")
            return LoadMoreResult(LoadMoreStatus.UNAVAILABLE, visible=visible)

        if batch.attempted == 0 or batch.all_failed:
            logger.warning("stage=load_more every source failed (%s)", ", ".join(batch.failed))
            return LoadMoreResult(LoadMoreStatus.UNAVAILABLE, visible=visible)

        before = len(state.filtered())
        state.merge_items(normalize_batch(batch.entries))
        added = len(state.filtered()) - before
        if added == 0:
            self._gate.close()
            return LoadMoreResult(LoadMoreStatus.EXHAUSTED, visible=visible)

        state.page_index += 1
        return LoadMoreResult(LoadMoreStatus.FETCHED, added=added, visible=len(state.visible()))

    # -- sentiment -------------------------------------------------------

    async def fetch_indices(self) -> Dict[str, Optional[IndexSnapshot]]:
        async with self._session_factory() as session:
            snapshots = await fetch_index_snapshots(
                session,
                self.relays,
                self.config.index_symbols,
                timeout=self.config.index_timeout,
                fallbacks=self.config.index_fallback_symbols,
            )
        self.index_snapshots = snapshots
        return snapshots

    async def sentiment(self, *, refresh_indices: bool = True) -> SentimentReading:
        """Composite sentiment of the current items and the latest index moves."""
        if refresh_indices:
            try:
                await self.fetch_indices()
            except Exception:
                logger.exception("stage=index unexpected failure")
        reading = analyze(tuple(self.state.items), self.index_snapshots.values())
        logger.info(
            "stage=sentiment market=%d news=%d breadth=%d score=%d",
            reading.market, reading.news, reading.breadth, reading.score,
        )
        return reading

    # -- auto refresh ----------------------------------------------------

    async def auto_refresh_tick(self) -> bool:
        """Refresh unless another cycle is running. Returns whether it refreshed."""
        if self.is_refreshing or self._lock.locked():
            logger.debug("stage=refresh auto tick skipped, cycle in progress")
            return False
        await self.refresh()
        return True

    async def run_auto_refresh(self, interval: Optional[float] = None) -> None:
        interval = interval if interval is not None else self.config.refresh_interval
        while True:
            await asyncio.sleep(interval)
            await self.auto_refresh_tick()

    def start_auto_refresh(self, interval: Optional[float] = None) -> asyncio.Task:
        self.stop_auto_refresh()
        self._auto_task = asyncio.ensure_future(self.run_auto_refresh(interval))
        return self._auto_task

    def stop_auto_refresh(self) -> None:
        if self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None
