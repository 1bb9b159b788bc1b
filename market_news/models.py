from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple


NULL_LINK = "#"

CATEGORIES: Tuple[str, ...] = ("markets", "stocks", "economy", "ipo", "crypto")
ALL_CATEGORIES = "all"


@dataclass(frozen=True)
class NewsItem:
    """
    Stable public model representing a normalized news item.

    WARNING: Do not change fields lightly. Every source is mapped into this shape.
    """
    id: str
    title: str
    description: str
    category: str
    source: str
    published_at: datetime
    image_url: Optional[str] = None
    link_url: str = NULL_LINK
    is_featured: bool = False

    @property
    def has_link(self) -> bool:
        return bool(self.link_url) and self.link_url != NULL_LINK

    def age_label(self, now: Optional[datetime] = None) -> str:
        """Short relative age such as "5m ago", or "12 Jan" past a week."""
        now = now or datetime.now(timezone.utc)
        seconds = (now - self.published_at).total_seconds()
        minutes = int(seconds // 60)
        hours = int(seconds // 3600)
        days = int(seconds // 86400)
        if minutes < 1:
            return "Just now"
        if minutes < 60:
            return f"{minutes}m ago"
        if hours < 24:
            return f"{hours}h ago"
        if days < 7:
            return f"{days}d ago"
        return f"{self.published_at.day} {self.published_at.strftime('%b')}"


@dataclass(frozen=True)
class IndexSnapshot:
    """Latest quote for one tracked market index."""
    symbol: str
    price: float
    change: float
    change_percent: float

    @property
    def is_positive(self) -> bool:
        return self.change >= 0
