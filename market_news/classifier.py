from __future__ import annotations

import re
from typing import Pattern, Tuple


DEFAULT_CATEGORY = "stocks"

# First match wins. Headlines often mix keyword classes ("Bitcoin IPO"), so the
# order below is the tie-break.
_CATEGORY_RULES: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("ipo", re.compile(r"\b(ipo|initial public offering|debut|listing)\b", re.IGNORECASE)),
    ("crypto", re.compile(r"\b(crypto|bitcoin|ethereum|blockchain|cryptocurrency)\b", re.IGNORECASE)),
    ("economy", re.compile(r"\b(rbi|inflation|gdp|fiscal|monetary|government|policy)\b", re.IGNORECASE)),
    ("markets", re.compile(r"\b(sensex|nifty|index|market|fii|dii|rally|fall)\b", re.IGNORECASE)),
)


def classify(title: str, description: str = "") -> str:
    """Topic of a headline, decided on title plus description."""
    text = f"{title or ''} {description or ''}"
    for category, pattern in _CATEGORY_RULES:
        if pattern.search(text):
            return category
    return DEFAULT_CATEGORY
