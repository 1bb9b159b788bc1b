from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlencode

import aiohttp

from . import http
from .config import ApiProvider
from .exceptions import MalformedDocument, ProviderFailure
from .fetcher import SourceBatch
from .parser import RawEntry, Schema, read_api_response


logger = logging.getLogger(__name__)

DEFAULT_API_TIMEOUT = 15.0


class StructuredApiFetcher:
    """
    Queries structured news APIs directly (no relay).

    Continuation tokens are kept per provider name and only sent on load-more
    cycles; each answer replaces the provider's stored token.
    """

    def __init__(self, providers: Iterable[ApiProvider], *, timeout: float = DEFAULT_API_TIMEOUT) -> None:
        self.providers: List[ApiProvider] = list(providers)
        self.timeout = timeout
        self.next_tokens: Dict[str, Optional[str]] = {}

    @property
    def active(self) -> List[ApiProvider]:
        return [p for p in self.providers if p.is_active]

    def build_url(self, provider: ApiProvider, *, query: Optional[str] = None, continuation: bool = False) -> str:
        params = dict(provider.query_params)
        if query:
            params[provider.query_param] = query
        if continuation and provider.page_param and self.next_tokens.get(provider.name):
            params[provider.page_param] = self.next_tokens[provider.name]
        params[provider.credential_param] = provider.credential or ""
        return f"{provider.base_url}?{urlencode(params)}"

    async def fetch_provider(
        self,
        session: aiohttp.ClientSession,
        provider: ApiProvider,
        *,
        query: Optional[str] = None,
        continuation: bool = False,
    ) -> List[RawEntry]:
        """Query one provider. Raises ProviderFailure on any transport or shape problem."""
        try:
            schema = Schema(provider.schema)
        except ValueError as e:
            raise ProviderFailure(provider.name, f"unknown schema {provider.schema!r}") from e

        url = self.build_url(provider, query=query, continuation=continuation)
        try:
            text = await http.get_text(
                session, url, timeout=self.timeout, headers={"Accept": http.JSON_ACCEPT}
            )
            articles, token = read_api_response(schema, json.loads(text))
        except asyncio.TimeoutError as e:
            raise ProviderFailure(provider.name, f"timed out after {self.timeout}s") from e
        except aiohttp.ClientResponseError as e:
            raise ProviderFailure(provider.name, f"HTTP {e.status}") from e
        except (aiohttp.ClientError, MalformedDocument, ValueError) as e:
            raise ProviderFailure(provider.name, str(e) or type(e).__name__) from e

        if provider.page_param:
            self.next_tokens[provider.name] = token
        return [RawEntry(schema=schema, data=a) for a in articles]

    async def fetch(
        self,
        session: aiohttp.ClientSession,
        *,
        query: Optional[str] = None,
        continuation: bool = False,
    ) -> SourceBatch:
        """
        Query every active provider concurrently and concatenate the results in
        configuration order. A failing provider does not block the others.
        """
        providers = self.active
        for p in self.providers:
            if not p.is_active:
                logger.debug("stage=provider provider=%s skipped (not configured)", p.name)

        batch = SourceBatch(attempted=len(providers))
        if not providers:
            return batch

        tasks = [
            asyncio.ensure_future(self.fetch_provider(session, p, query=query, continuation=continuation))
            for p in providers
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for provider, result in zip(providers, results):
            if isinstance(result, ProviderFailure):
                logger.warning("stage=provider provider=%s %s", provider.name, result.reason)
                batch.failed.append(provider.name)
            elif isinstance(result, BaseException):
                logger.warning("stage=provider provider=%s failed: %r", provider.name, result)
                batch.failed.append(provider.name)
            else:
                batch.succeeded += 1
                batch.entries.extend(result)
        logger.info(
            "stage=provider providers=%d ok=%d entries=%d",
            batch.attempted, batch.succeeded, len(batch.entries),
        )
        return batch


async def fetch_from_apis(
    session: aiohttp.ClientSession,
    providers: Iterable[ApiProvider],
    *,
    timeout: float = DEFAULT_API_TIMEOUT,
    query: Optional[str] = None,
) -> List[RawEntry]:
    """One-shot helper: query the configured providers and return their raw entries."""
    batch = await StructuredApiFetcher(providers, timeout=timeout).fetch(session, query=query)
    return batch.entries
