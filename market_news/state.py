from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .dedup import merge
from .models import ALL_CATEGORIES, NewsItem
from .pagination import check_category, filter_by_category, get_visible_window, is_fully_exposed
from .relay import RelayPool


logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_STALE = "stale"
STATUS_EMPTY = "empty"


@dataclass(frozen=True)
class PipelineSnapshot:
    """Read-only view of the aggregate state handed to consumers."""
    items: Tuple[NewsItem, ...]
    visible: Tuple[NewsItem, ...]
    category: str
    page_index: int
    search: Optional[str]
    relay_cursor: int
    status: str
    refreshed_at: Optional[datetime]
    is_refreshing: bool

    @property
    def is_empty(self) -> bool:
        return not self.items


Subscriber = Callable[[PipelineSnapshot], None]


def matches_topic(item: NewsItem, topic: str) -> bool:
    needle = topic.lower()
    return needle in item.title.lower() or needle in item.description.lower()


class AggregateState:
    """
    Canonical item list plus the view settings derived from it.

    Owned by one NewsPipeline, which is its only writer. Consumers read
    PipelineSnapshot copies, never this object.
    """

    def __init__(self, relay_pool: RelayPool, page_size: int = 6) -> None:
        self.relay_pool = relay_pool
        self.page_size = page_size
        self.items: List[NewsItem] = []
        self.category = ALL_CATEGORIES
        self.page_index = 1
        self.search: Optional[str] = None
        self.status = STATUS_EMPTY
        self.refreshed_at: Optional[datetime] = None
        self._subscribers: List[Subscriber] = []

    def _source(self) -> List[NewsItem]:
        if self.search:
            return [it for it in self.items if matches_topic(it, self.search)]
        return self.items

    def filtered(self) -> List[NewsItem]:
        return filter_by_category(self._source(), self.category)

    def visible(self) -> List[NewsItem]:
        return get_visible_window(self._source(), self.category, self.page_size, self.page_index)

    def fully_exposed(self) -> bool:
        return is_fully_exposed(self._source(), self.category, self.page_size, self.page_index)

    def replace_items(self, items: Sequence[NewsItem], refreshed_at: datetime) -> None:
        self.items = list(items)
        self.page_index = 1
        self.status = STATUS_OK
        self.refreshed_at = refreshed_at

    def merge_items(self, items: Sequence[NewsItem]) -> List[NewsItem]:
        """Merge a batch; returns the items that were actually added."""
        before = len(self.items)
        self.items = merge(self.items, items)
        return self.items[before:]

    def set_category(self, category: str) -> None:
        self.category = check_category(category)
        self.search = None
        self.page_index = 1

    def set_search(self, topic: str) -> None:
        self.search = topic.strip() or None
        self.category = ALL_CATEGORIES
        self.page_index = 1

    def snapshot(self, is_refreshing: bool = False) -> PipelineSnapshot:
        return PipelineSnapshot(
            items=tuple(self.items),
            visible=tuple(self.visible()),
            category=self.category,
            page_index=self.page_index,
            search=self.search,
            relay_cursor=self.relay_pool.cursor,
            status=self.status,
            refreshed_at=self.refreshed_at,
            is_refreshing=is_refreshing,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, is_refreshing: bool = False) -> None:
        if not self._subscribers:
            return
        snap = self.snapshot(is_refreshing)
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception:
                logger.exception("stage=notify subscriber %r raised", callback)
