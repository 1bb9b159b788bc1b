"""Pytest configuration and fixtures for market_news tests."""

import inspect
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from market_news import http
from market_news.config import ApiProvider, PipelineConfig
from market_news.models import NewsItem


RSS_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>ET Markets</title>
<link>https://economictimes.indiatimes.com/markets</link>
<description>Markets</description>
<item>
<title>Sensex climbs 500 points as FII buying returns</title>
<link>https://example.com/sensex</link>
<description><![CDATA[<p>Banks &amp; metals led <img src="https://img.example.com/sensex.jpg"/> the gains</p>]]></description>
<pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
</item>
<item>
<title>Acme IPO opens for subscription</title>
<link>https://example.com/acme</link>
<description>Price band fixed at 100</description>
<pubDate>Mon, 06 Jan 2025 12:00:00 GMT</pubDate>
<enclosure url="https://img.example.com/acme.jpg" type="image/jpeg" length="0"/>
</item>
</channel>
</rss>
"""

ATOM_DOC = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
<title>Mint Markets</title>
<id>urn:mint</id>
<updated>2025-01-06T09:00:00Z</updated>
<entry>
<title>RBI holds repo rate amid inflation worries</title>
<id>urn:mint:1</id>
<link href="https://example.com/rbi"/>
<updated>2025-01-06T09:00:00Z</updated>
<summary>Policy stance unchanged</summary>
</entry>
</feed>
"""

EXTRA_RSS_DOC = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>Moneycontrol</title>
<link>https://www.moneycontrol.com</link>
<description>Latest</description>
<item>
<title>Bitcoin ETF inflows hit new high</title>
<link>https://example.com/btc</link>
<description>Crypto funds see strong demand</description>
<pubDate>Mon, 06 Jan 2025 08:00:00 GMT</pubDate>
</item>
</channel>
</rss>
"""

HTML_PAGE = "<html><head><title>Blocked</title></head><body>Access denied</body></html>"

ET_FEED = "https://economictimes.indiatimes.com/markets/rssfeeds/1977021501.cms"
MINT_FEED = "https://www.livemint.com/rss/markets"
MC_FEED = "https://www.moneycontrol.com/rss/latestnews.xml"

RELAYS = [
    "https://relay-a.test/raw?url=",
    "https://relay-b.test/?",
    "https://relay-c.test/proxy?quest={url}",
]

FIXED_NOW = datetime(2025, 1, 6, 15, 0, tzinfo=timezone.utc)


class FakeSession:
    """Stands in for aiohttp.ClientSession; requests go through FakeWeb."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeWeb:
    """
    Replacement for market_news.http.get_text.

    Routes are (needles, response) pairs; the first route whose needles all
    occur in the URL answers. A response may be text, an exception instance
    (raised), or a callable taking the URL (its result may be awaitable).
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, response, *needles):
        self.routes.append((needles, response))
        return self

    def reset(self):
        self.routes = []

    async def get_text(self, session, url, *, timeout, headers=None):
        self.calls.append(url)
        for needles, response in self.routes:
            if all(n in url for n in needles):
                if isinstance(response, BaseException):
                    raise response
                if callable(response):
                    result = response(url)
                    if inspect.isawaitable(result):
                        result = await result
                    return result
                return response
        raise aiohttp.ClientConnectionError(f"no route for {url}")

    def calls_to(self, needle):
        return [c for c in self.calls if needle in c]


def encoded(url):
    from urllib.parse import quote

    return quote(url, safe="")


@pytest.fixture
def web(monkeypatch):
    w = FakeWeb()
    monkeypatch.setattr(http, "get_text", w.get_text)
    return w


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def config():
    return PipelineConfig(
        feeds=[ET_FEED, MINT_FEED],
        relays=list(RELAYS),
        providers=[
            ApiProvider(name="GNews", base_url="https://gnews.io/api/v4/search", schema="gnews"),
        ],
        page_size=2,
    )


@pytest.fixture
def make_item():
    counter = {"n": 0}

    def _make(title, *, category="stocks", description="", minutes_ago=0, source="Test"):
        counter["n"] += 1
        return NewsItem(
            id=f"test-{counter['n']}",
            title=title,
            description=description,
            category=category,
            source=source,
            published_at=FIXED_NOW - timedelta(minutes=minutes_ago),
        )

    return _make
