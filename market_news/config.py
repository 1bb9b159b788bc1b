from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from dotenv import load_dotenv


PLACEHOLDER_CREDENTIAL = "YOUR_API_KEY_HERE"

DEFAULT_FEEDS = [
    "https://economictimes.indiatimes.com/markets/rssfeeds/1977021501.cms",
    "https://economictimes.indiatimes.com/markets/stocks/rssfeeds/2146842.cms",
    "https://www.moneycontrol.com/rss/latestnews.xml",
    "https://www.moneycontrol.com/rss/marketreports.xml",
    "https://www.livemint.com/rss/markets",
    "https://www.livemint.com/rss/money",
    "https://feeds.feedburner.com/ndtvprofit-latest",
]

DEFAULT_RELAYS = [
    "https://api.allorigins.win/raw?url=",
    "https://corsproxy.io/?",
    "https://api.codetabs.com/v1/proxy?quest=",
]

DEFAULT_QUERY = "indian stock market OR sensex OR nifty OR BSE OR NSE"

CATEGORY_QUERIES = {
    "markets": "indian stock market sensex nifty BSE NSE",
    "stocks": "indian stocks shares equity trading",
    "economy": "indian economy RBI GDP inflation",
    "ipo": "IPO initial public offering india",
    "crypto": "cryptocurrency bitcoin india crypto",
}

INDEX_SYMBOLS = {
    "nifty": "^NSEI",
    "sensex": "^BSESN",
    "bankNifty": "^NSEBANK",
}

# Google Finance quote symbols tried when the chart API fails for an index.
INDEX_FALLBACK_SYMBOLS = {
    "nifty": "NIFTY_50",
    "sensex": "SENSEX",
    "bankNifty": "NIFTY_BANK",
}


@dataclass
class ApiProvider:
    """Descriptor of one structured news API queried directly."""
    name: str
    base_url: str
    schema: str
    enabled: bool = False
    query_params: Dict[str, str] = field(default_factory=dict)
    credential: Optional[str] = None
    credential_param: str = "apikey"
    query_param: str = "q"
    page_param: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return bool(self.enabled and self.credential and self.credential != PLACEHOLDER_CREDENTIAL)


def default_providers() -> List[ApiProvider]:
    return [
        ApiProvider(
            name="GNews",
            base_url="https://gnews.io/api/v4/search",
            schema="gnews",
            query_params={"q": DEFAULT_QUERY, "lang": "en", "country": "in", "max": "10"},
        ),
        ApiProvider(
            name="NewsData",
            base_url="https://newsdata.io/api/1/news",
            schema="newsdata",
            query_params={
                "q": "stock market india",
                "country": "in",
                "language": "en",
                "category": "business",
            },
            page_param="page",
        ),
    ]


@dataclass
class PipelineConfig:
    feeds: List[str] = field(default_factory=lambda: list(DEFAULT_FEEDS))
    relays: List[str] = field(default_factory=lambda: list(DEFAULT_RELAYS))
    providers: List[ApiProvider] = field(default_factory=default_providers)
    page_size: int = 6
    refresh_interval: float = 300.0
    feed_timeout: float = 8.0
    api_timeout: float = 15.0
    index_timeout: float = 10.0
    exhausted_retry_after: float = 5.0
    ticker_size: int = 10
    default_query: str = DEFAULT_QUERY
    category_queries: Dict[str, str] = field(default_factory=lambda: dict(CATEGORY_QUERIES))
    index_symbols: Dict[str, str] = field(default_factory=lambda: dict(INDEX_SYMBOLS))
    index_fallback_symbols: Dict[str, str] = field(default_factory=lambda: dict(INDEX_FALLBACK_SYMBOLS))


def _split_env(name: str) -> Optional[List[str]]:
    raw = os.getenv(name)
    if not raw:
        return None
    values = [v.strip() for v in raw.split(",") if v.strip()]
    return values or None


def load_config(env_file: Optional[str] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from the environment.

    Values in a `.env` file (or `env_file`) are loaded first; variables already
    set in the process environment win. Supplying GNEWS_API_KEY or
    NEWSDATA_API_KEY enables the matching provider.
    """
    load_dotenv(env_file)
    config = PipelineConfig()

    keys = {
        "GNews": os.getenv("GNEWS_API_KEY"),
        "NewsData": os.getenv("NEWSDATA_API_KEY"),
    }
    providers = []
    for p in config.providers:
        key = keys.get(p.name)
        if key:
            p = replace(p, enabled=True, credential=key)
        providers.append(p)
    config.providers = providers

    feeds = _split_env("MARKET_NEWS_FEEDS")
    if feeds:
        config.feeds = feeds
    relays = _split_env("MARKET_NEWS_RELAYS")
    if relays:
        config.relays = relays

    page_size = os.getenv("MARKET_NEWS_PAGE_SIZE")
    if page_size:
        config.page_size = max(1, int(page_size))
    interval = os.getenv("MARKET_NEWS_REFRESH_INTERVAL")
    if interval:
        config.refresh_interval = float(interval)
    return config
