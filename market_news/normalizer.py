from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .classifier import classify
from .models import NULL_LINK, NewsItem
from .parser import Schema, first_image_in_markup, parse_entry


# Only real markup: a tag name must start with a letter, so "<5%" stays text.
_TAG = re.compile(r"<!--.*?-->|</?[A-Za-z][^<>]*>", re.DOTALL)
_SPACES = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """
    Strip markup tags and decode HTML entities.

    Decoding runs until the text stops changing, and tags revealed by decoding
    are stripped too, so clean_text(clean_text(x)) == clean_text(x). Decoded
    comparison signs such as "<5%" are kept as text.
    """
    if not text:
        return ""
    out = text
    while True:
        stripped = _TAG.sub("", out)
        decoded = html.unescape(stripped)
        if decoded == out:
            break
        out = decoded
    return _SPACES.sub(" ", out).strip()


def make_item_id(schema: Schema, ingested_at: datetime, ordinal: int) -> str:
    return f"{schema.id_prefix}-{int(ingested_at.timestamp() * 1000)}-{ordinal}"


def to_news_item(
    entry: Dict[str, Any],
    schema: Schema,
    *,
    ordinal: int,
    ingested_at: datetime,
    source: Optional[str] = None,
) -> NewsItem:
    """
    Convert a parsed entry dict (see parser.parse_entry) into a NewsItem.

    Missing fields degrade to defaults: empty text, the null link, and
    `ingested_at` for the timestamp. Raises ValueError when the title is empty
    after cleaning, since such a row cannot be deduplicated.
    """
    raw_description = entry.get("description") or ""
    title = clean_text(entry.get("title"))
    if not title:
        raise ValueError("Entry has no usable title")
    description = clean_text(raw_description)

    image_url = entry.get("image_url") or first_image_in_markup(raw_description)

    return NewsItem(
        id=make_item_id(schema, ingested_at, ordinal),
        title=title,
        description=description,
        category=classify(title, description),
        source=source or entry.get("source") or "News Source",
        published_at=entry.get("published_at") or ingested_at,
        image_url=image_url or None,
        link_url=entry.get("link") or NULL_LINK,
    )


def normalize(
    raw: Dict[str, Any],
    schema: Schema,
    *,
    ordinal: int = 0,
    ingested_at: Optional[datetime] = None,
    source: Optional[str] = None,
) -> NewsItem:
    """Map one raw upstream record of the given schema to the canonical NewsItem."""
    ingested_at = ingested_at or datetime.now(timezone.utc)
    return to_news_item(
        parse_entry(raw, schema),
        schema,
        ordinal=ordinal,
        ingested_at=ingested_at,
        source=source,
    )
