from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Set

from .models import NewsItem


DEDUP_KEY_LENGTH = 50

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def dedup_key(title: str) -> str:
    """Lower-cased title with everything but a-z/0-9 removed, cut to a fixed prefix."""
    return _NON_ALNUM.sub("", (title or "").lower())[:DEDUP_KEY_LENGTH]


def deduplicate(items: Iterable[NewsItem]) -> List[NewsItem]:
    """
    Remove near-duplicate titles.
    Keeps the first occurrence and preserves incoming order.
    """
    seen: Set[str] = set()
    out: List[NewsItem] = []
    for it in items:
        key = dedup_key(it.title)
        if key in seen:
            continue
        seen.add(key)
        out.append(it)
    return out


def merge(existing: Sequence[NewsItem], incoming: Iterable[NewsItem]) -> List[NewsItem]:
    """
    Append the incoming items whose Dedup Key is new.

    Existing items keep their positions; an incoming item is dropped when its key
    is already known or repeats one seen earlier in the same batch.
    """
    seen = {dedup_key(it.title) for it in existing}
    out = list(existing)
    for it in incoming:
        key = dedup_key(it.title)
        if key in seen:
            continue
        seen.add(key)
        out.append(it)
    return out


def sort_by_recency(items: Iterable[NewsItem]) -> List[NewsItem]:
    """Newest first; ties keep their incoming order."""
    return sorted(items, key=lambda x: x.published_at, reverse=True)
