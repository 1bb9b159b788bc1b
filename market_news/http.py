from __future__ import annotations

from typing import Dict, Optional

import aiohttp


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8"
JSON_ACCEPT = "application/json"

# The request timeout also runs while waiting for a pooled connection, so the
# pool holds every request of a cycle and is not capped per host: all feeds
# go through the same relay host.
MAX_CONNECTIONS = 100


def new_session() -> aiohttp.ClientSession:
    """Session shared by every request of one fetch cycle."""
    conn = aiohttp.TCPConnector(limit=MAX_CONNECTIONS, limit_per_host=0)
    return aiohttp.ClientSession(connector=conn, headers={"User-Agent": USER_AGENT})


async def get_text(
    session: aiohttp.ClientSession,
    url: str,
    *,
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> str:
    """
    GET `url` and return the body as text.

    Raises aiohttp.ClientResponseError for non-2xx answers, asyncio.TimeoutError
    when `timeout` elapses, and other aiohttp.ClientError subclasses on
    transport problems.
    """
    async with session.get(
        url,
        headers=headers,
        timeout=aiohttp.ClientTimeout(total=timeout),
        allow_redirects=True,
    ) as resp:
        resp.raise_for_status()
        return await resp.text()
