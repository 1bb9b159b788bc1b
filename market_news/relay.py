from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import aiohttp

from . import http
from .exceptions import AllRelaysExhausted, MalformedDocument, RelayFailure


logger = logging.getLogger(__name__)

Validator = Callable[[str], Any]


def build_relay_url(template: str, target_url: str) -> str:
    """Place the encoded target into a relay template ("{url}" slot, else appended)."""
    encoded = quote(target_url, safe="")
    if "{url}" in template:
        return template.replace("{url}", encoded)
    return template + encoded


class RelayPool:
    """
    Ordered pool of interchangeable relay endpoints.

    `cursor` points at the relay that succeeded last; every fetch starts there and
    wraps around the pool. The cursor lives in memory only.
    """

    def __init__(self, relays: Sequence[str], cursor: int = 0) -> None:
        if not relays:
            raise ValueError("RelayPool needs at least one relay template")
        self.relays: List[str] = list(relays)
        self.cursor = cursor % len(self.relays)

    def __len__(self) -> int:
        return len(self.relays)

    def order(self) -> List[int]:
        n = len(self.relays)
        return [(self.cursor + i) % n for i in range(n)]

    async def _attempt(
        self,
        session: aiohttp.ClientSession,
        index: int,
        target_url: str,
        timeout: float,
        validate: Optional[Validator],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        url = build_relay_url(self.relays[index], target_url)
        try:
            text = await http.get_text(session, url, timeout=timeout, headers=headers)
            return validate(text) if validate else text
        except asyncio.TimeoutError as e:
            raise RelayFailure(index, target_url, f"timed out after {timeout}s") from e
        except aiohttp.ClientResponseError as e:
            raise RelayFailure(index, target_url, f"HTTP {e.status}") from e
        except (aiohttp.ClientError, MalformedDocument, ValueError) as e:
            raise RelayFailure(index, target_url, str(e) or type(e).__name__) from e

    async def fetch(
        self,
        session: aiohttp.ClientSession,
        target_url: str,
        *,
        timeout: float,
        validate: Optional[Validator] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[Any, int]:
        """
        Fetch `target_url` through the first relay that answers.

        `validate` receives the body text and returns the payload to hand back;
        raising MalformedDocument marks the relay as failed so the next one is
        tried. Returns (payload, relay index used) and moves the cursor to that
        relay. Raises AllRelaysExhausted when every relay failed.
        """
        failures: List[RelayFailure] = []
        for index in self.order():
            try:
                payload = await self._attempt(session, index, target_url, timeout, validate, headers)
            except RelayFailure as e:
                logger.debug("stage=relay relay=%d target=%s reason=%s", index, target_url, e.reason)
                failures.append(e)
                continue
            if index != self.cursor:
                logger.info("stage=relay cursor %d -> %d", self.cursor, index)
            self.cursor = index
            return payload, index
        raise AllRelaysExhausted(target_url, failures)
