"""
Composite market sentiment on a 0-100 scale.

Three sub-scores, each neutral (50) when its data is missing:

- market: index moves mapped linearly, -3% -> 0 and +3% -> 100, clamped
- news: share of positive keyword hits among all keyword hits in the headlines
- breadth: share of indices that closed up

The composite weighs them 40/40/20.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from .models import IndexSnapshot, NewsItem


NEUTRAL = 50

MARKET_WEIGHT = 0.4
NEWS_WEIGHT = 0.4
BREADTH_WEIGHT = 0.2

POSITIVE_KEYWORDS = (
    "surge", "rally", "gain", "high", "bullish", "rise", "up", "soar",
    "jump", "climb", "advance", "positive", "growth", "profit", "boom",
    "record", "strong", "optimistic", "recovery", "breakthrough",
)
NEGATIVE_KEYWORDS = (
    "fall", "drop", "loss", "low", "bearish", "decline", "down", "crash",
    "plunge", "sink", "slump", "negative", "weak", "fear", "crisis",
    "concern", "worry", "risk", "volatile", "correction",
)

_POSITIVE = re.compile(r"\b(" + "|".join(POSITIVE_KEYWORDS) + r")\b", re.IGNORECASE)
_NEGATIVE = re.compile(r"\b(" + "|".join(NEGATIVE_KEYWORDS) + r")\b", re.IGNORECASE)

_LABELS = (
    (80, "Extremely Bullish"),
    (65, "Bullish"),
    (55, "Slightly Bullish"),
    (45, "Neutral"),
    (35, "Slightly Bearish"),
    (20, "Bearish"),
)


@dataclass(frozen=True)
class SentimentReading:
    score: int
    label: str
    market: int
    news: int
    breadth: int


def _round(value: float) -> int:
    # half up, not banker's rounding
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return min(high, max(low, value))


def _available(snapshots: Optional[Iterable[Optional[IndexSnapshot]]]) -> Sequence[IndexSnapshot]:
    return [s for s in (snapshots or []) if s is not None]


def market_score(snapshots: Optional[Iterable[Optional[IndexSnapshot]]]) -> int:
    scores = [_clamp((s.change_percent + 3) / 6 * 100) for s in _available(snapshots)]
    if not scores:
        return NEUTRAL
    return _round(sum(scores) / len(scores))


def keyword_counts(items: Iterable[NewsItem]) -> Tuple[int, int]:
    positive = negative = 0
    for it in items:
        text = f"{it.title} {it.description}"
        positive += len(_POSITIVE.findall(text))
        negative += len(_NEGATIVE.findall(text))
    return positive, negative


def news_score(items: Iterable[NewsItem]) -> int:
    positive, negative = keyword_counts(items)
    total = positive + negative
    if total == 0:
        return NEUTRAL
    return _round(positive / total * 100)


def breadth_score(snapshots: Optional[Iterable[Optional[IndexSnapshot]]]) -> int:
    available = _available(snapshots)
    if not available:
        return NEUTRAL
    up = sum(1 for s in available if s.is_positive)
    return _round(100 * up / len(available))


def composite_score(market: float, news: float, breadth: float) -> int:
    score = _round(MARKET_WEIGHT * market + NEWS_WEIGHT * news + BREADTH_WEIGHT * breadth)
    return int(_clamp(score))


def sentiment_label(score: int) -> str:
    for floor, label in _LABELS:
        if score >= floor:
            return label
    return "Extremely Bearish"


def sentiment_band(score: int) -> str:
    """Coarse colour band of the gauge."""
    if score < 35:
        return "bearish"
    if score > 65:
        return "bullish"
    return "neutral"


def analyze(
    items: Iterable[NewsItem],
    snapshots: Optional[Iterable[Optional[IndexSnapshot]]] = None,
) -> SentimentReading:
    snapshots = list(snapshots or [])
    market = market_score(snapshots)
    news = news_score(items)
    breadth = breadth_score(snapshots)
    score = composite_score(market, news, breadth)
    return SentimentReading(score=score, label=sentiment_label(score), market=market, news=news, breadth=breadth)


def compute_sentiment(
    items: Iterable[NewsItem],
    snapshots: Optional[Iterable[Optional[IndexSnapshot]]] = None,
) -> int:
    return analyze(items, snapshots).score
