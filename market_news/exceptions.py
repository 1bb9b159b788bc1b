from __future__ import annotations

from typing import List, Sequence


class NewsPipelineError(Exception):
    """Base class for every failure raised inside the news pipeline."""


class RelayFailure(NewsPipelineError):
    """Raised when a single relay attempt fails or times out."""

    def __init__(self, relay_index: int, target_url: str, reason: str) -> None:
        super().__init__(f"Relay {relay_index} failed for {target_url}: {reason}")
        self.relay_index = relay_index
        self.target_url = target_url
        self.reason = reason


class AllRelaysExhausted(NewsPipelineError):
    """Raised when every relay in the pool failed for one target."""

    def __init__(self, target_url: str, failures: Sequence[RelayFailure] = ()) -> None:
        msg = f"All relays exhausted for {target_url}"
        if failures:
            msg += " (" + "; ".join(f.reason for f in failures) + ")"
        super().__init__(msg)
        self.target_url = target_url
        self.failures: List[RelayFailure] = list(failures)


class ProviderFailure(NewsPipelineError):
    """Raised when a structured news API cannot be queried or answered badly."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"Provider {provider} failed: {reason}")
        self.provider = provider
        self.reason = reason


class MalformedDocument(NewsPipelineError):
    """Raised when a payload arrived but does not have the expected shape."""


class NoDataAvailable(NewsPipelineError):
    """Raised when every configured source failed during a fetch cycle."""
