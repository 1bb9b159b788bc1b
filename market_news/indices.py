from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from .exceptions import AllRelaysExhausted, MalformedDocument
from .http import JSON_ACCEPT
from .models import IndexSnapshot
from .relay import RelayPool


logger = logging.getLogger(__name__)

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}?interval=1d&range=1d"
GOOGLE_FINANCE_URL = "https://www.google.com/finance/quote/{symbol}:INDEXNSE"

DEFAULT_INDEX_TIMEOUT = 10.0

_LAST_PRICE = re.compile(r'data-last-price="([\d.]+)"', re.IGNORECASE)
_CHANGE = re.compile(r'data-change="([\d.-]+)"', re.IGNORECASE)
_CHANGE_PERCENT = re.compile(r'data-change-percent="([\d.-]+)"', re.IGNORECASE)


def parse_chart(symbol: str, data: Any) -> IndexSnapshot:
    """
    Build a snapshot from a Yahoo Finance chart response.

    Raises MalformedDocument when the chart meta block or a usable price is missing.
    """
    try:
        meta = data["chart"]["result"][0]["meta"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedDocument(f"No chart meta for {symbol}") from e
    if not isinstance(meta, dict):
        raise MalformedDocument(f"No chart meta for {symbol}")

    price = meta.get("regularMarketPrice") or meta.get("previousClose")
    previous = meta.get("chartPreviousClose") or meta.get("previousClose")
    if not isinstance(price, (int, float)) or not isinstance(previous, (int, float)) or not previous:
        raise MalformedDocument(f"No usable price for {symbol}")

    change = float(price) - float(previous)
    change_percent = change / float(previous) * 100
    if math.isnan(change_percent):
        raise MalformedDocument(f"No usable price for {symbol}")
    return IndexSnapshot(symbol=symbol, price=float(price), change=change, change_percent=change_percent)


def parse_quote_page(symbol: str, page: str) -> IndexSnapshot:
    """
    Build a snapshot from the data attributes of a Google Finance quote page.

    A missing change or percent reads as 0. Raises MalformedDocument without a
    last price.
    """
    price = _LAST_PRICE.search(page or "")
    if not price:
        raise MalformedDocument(f"No last price on quote page for {symbol}")
    change = _CHANGE.search(page)
    change_percent = _CHANGE_PERCENT.search(page)
    return IndexSnapshot(
        symbol=symbol,
        price=float(price.group(1)),
        change=float(change.group(1)) if change else 0.0,
        change_percent=float(change_percent.group(1)) if change_percent else 0.0,
    )


async def fetch_index_snapshot(
    session: aiohttp.ClientSession,
    pool: RelayPool,
    symbol: str,
    *,
    timeout: float = DEFAULT_INDEX_TIMEOUT,
    fallback_symbol: Optional[str] = None,
) -> IndexSnapshot:
    """
    Fetch one index from the Yahoo chart API through the relays. When every
    relay fails and a fallback symbol is given, the Google Finance quote page
    is tried the same way.
    """
    target = YAHOO_CHART_URL.format(symbol=symbol)
    try:
        snapshot, _ = await pool.fetch(
            session,
            target,
            timeout=timeout,
            validate=lambda text: parse_chart(symbol, json.loads(text)),
            headers={"Accept": JSON_ACCEPT},
        )
        return snapshot
    except AllRelaysExhausted:
        if not fallback_symbol:
            raise
        logger.info("stage=index symbol=%s chart failed, trying quote page %s", symbol, fallback_symbol)

    snapshot, _ = await pool.fetch(
        session,
        GOOGLE_FINANCE_URL.format(symbol=fallback_symbol),
        timeout=timeout,
        validate=lambda text: parse_quote_page(fallback_symbol, text),
    )
    return snapshot


async def fetch_index_snapshots(
    session: aiohttp.ClientSession,
    pool: RelayPool,
    symbols: Mapping[str, str],
    *,
    timeout: float = DEFAULT_INDEX_TIMEOUT,
    fallbacks: Optional[Mapping[str, str]] = None,
) -> Dict[str, Optional[IndexSnapshot]]:
    """
    Fetch every tracked index concurrently. A symbol that cannot be fetched maps
    to None; the others are unaffected.
    """
    names: List[str] = list(symbols)
    fallbacks = fallbacks or {}
    tasks = [
        asyncio.ensure_future(
            fetch_index_snapshot(session, pool, symbols[n], timeout=timeout, fallback_symbol=fallbacks.get(n))
        )
        for n in names
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)
    out: Dict[str, Optional[IndexSnapshot]] = {}
    for name, result in zip(names, results):
        if isinstance(result, AllRelaysExhausted):
            logger.warning("stage=index symbol=%s all relays exhausted", symbols[name])
            out[name] = None
        elif isinstance(result, BaseException):
            logger.warning("stage=index symbol=%s failed: %r", symbols[name], result)
            out[name] = None
        else:
            out[name] = result
    return out
