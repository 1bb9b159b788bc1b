from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List

import aiohttp

from .exceptions import AllRelaysExhausted
from .http import FEED_ACCEPT
from .parser import RawEntry, feed_source_name, parse_feed_document
from .relay import RelayPool


logger = logging.getLogger(__name__)

DEFAULT_FEED_TIMEOUT = 8.0


@dataclass
class SourceBatch:
    """Raw entries gathered from a group of sources, with per-source bookkeeping."""
    entries: List[RawEntry] = field(default_factory=list)
    attempted: int = 0
    succeeded: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and self.succeeded == 0

    def extend(self, other: "SourceBatch") -> None:
        self.entries.extend(other.entries)
        self.attempted += other.attempted
        self.succeeded += other.succeeded
        self.failed.extend(other.failed)


async def fetch_feed_entries(
    session: aiohttp.ClientSession,
    pool: RelayPool,
    feed_url: str,
    *,
    timeout: float = DEFAULT_FEED_TIMEOUT,
) -> List[RawEntry]:
    """
    Fetch a single feed through the relay pool and return its raw entries.

    A relay whose body is not a usable feed counts as a failed relay. Raises
    AllRelaysExhausted when no relay produced a usable document.
    """
    parsed, relay_index = await pool.fetch(
        session,
        feed_url,
        timeout=timeout,
        validate=parse_feed_document,
        headers={"Accept": FEED_ACCEPT},
    )
    source = feed_source_name(feed_url, parsed.title)
    logger.debug(
        "stage=feed url=%s relay=%d schema=%s entries=%d",
        feed_url, relay_index, parsed.schema.value, len(parsed.entries),
    )
    return [RawEntry(schema=parsed.schema, data=e, source=source) for e in parsed.entries]


async def fetch_many(
    session: aiohttp.ClientSession,
    pool: RelayPool,
    urls: Iterable[str],
    *,
    timeout: float = DEFAULT_FEED_TIMEOUT,
) -> SourceBatch:
    """
    Fetch multiple feeds concurrently and aggregate all entries, in feed order.

    Failures on individual feeds are isolated: a failed or cancelled feed
    contributes nothing and the rest still count. Zero successful feeds is an
    empty batch, not an error.
    """
    urls = list(urls)
    batch = SourceBatch(attempted=len(urls))
    if not urls:
        return batch

    tasks = [
        asyncio.ensure_future(fetch_feed_entries(session, pool, u, timeout=timeout))
        for u in urls
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for url, result in zip(urls, results):
        if isinstance(result, AllRelaysExhausted):
            logger.warning("stage=feed url=%s all relays exhausted", url)
            batch.failed.append(url)
        elif isinstance(result, asyncio.CancelledError):
            logger.warning("stage=feed url=%s cancelled", url)
            batch.failed.append(url)
        elif isinstance(result, BaseException):
            logger.warning("stage=feed url=%s failed: %r", url, result)
            batch.failed.append(url)
        else:
            batch.succeeded += 1
            batch.entries.extend(result)
    logger.info("stage=feed feeds=%d ok=%d entries=%d", batch.attempted, batch.succeeded, len(batch.entries))
    return batch
