from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

from .models import ALL_CATEGORIES, CATEGORIES, NewsItem


class LoadMoreStatus(Enum):
    EXPANDED = "expanded"          # window grown from items already held
    FETCHED = "fetched"            # new unique items fetched, window grown
    EXHAUSTED = "exhausted"        # sources answered, nothing new
    UNAVAILABLE = "unavailable"    # every source failed


@dataclass(frozen=True)
class LoadMoreResult:
    status: LoadMoreStatus
    added: int = 0
    visible: int = 0

    @property
    def can_retry(self) -> bool:
        return self.status in (LoadMoreStatus.EXHAUSTED, LoadMoreStatus.UNAVAILABLE)


def check_category(category: str) -> str:
    if category != ALL_CATEGORIES and category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category!r}")
    return category


def filter_by_category(items: Iterable[NewsItem], category: str) -> List[NewsItem]:
    if category == ALL_CATEGORIES:
        return list(items)
    return [it for it in items if it.category == category]


def visible_count(total: int, page_size: int, page_index: int) -> int:
    return max(0, min(total, page_size * max(1, page_index)))


def get_visible_window(
    items: Sequence[NewsItem],
    category: str,
    page_size: int,
    page_index: int,
) -> List[NewsItem]:
    """
    Filter by category, then expose the first page_size * page_index items.

    The first item of the window is a featured copy; `items` is left untouched.
    """
    filtered = filter_by_category(items, check_category(category))
    window = filtered[: visible_count(len(filtered), page_size, page_index)]
    if window:
        window[0] = replace(window[0], is_featured=True)
    return window


def is_fully_exposed(items: Sequence[NewsItem], category: str, page_size: int, page_index: int) -> bool:
    filtered = filter_by_category(items, category)
    return visible_count(len(filtered), page_size, page_index) >= len(filtered)


class ExhaustionGate:
    """
    Remembers that a load-more found nothing new and holds further fetches back
    for `retry_after` seconds.
    """

    def __init__(self, retry_after: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.retry_after = retry_after
        self._clock = clock
        self._until: Optional[float] = None

    @property
    def closed(self) -> bool:
        if self._until is None:
            return False
        if self._clock() >= self._until:
            self._until = None
            return False
        return True

    def close(self) -> None:
        self._until = self._clock() + self.retry_after

    def reset(self) -> None:
        self._until = None
