from __future__ import annotations

import calendar
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import feedparser
from dateutil import parser as dateutil_parser

from .exceptions import MalformedDocument


class Schema(Enum):
    """Closed set of upstream document shapes the pipeline understands."""
    ITEM = "item"          # RSS / RDF <item> elements
    ENTRY = "entry"        # Atom <entry> elements
    GNEWS = "gnews"
    NEWSDATA = "newsdata"

    @property
    def id_prefix(self) -> str:
        return _ID_PREFIXES[self]


_ID_PREFIXES = {
    Schema.ITEM: "rss",
    Schema.ENTRY: "atom",
    Schema.GNEWS: "gnews",
    Schema.NEWSDATA: "newsdata",
}

_ITEM_TAG = re.compile(r"<item[\s>/]", re.IGNORECASE)
_ENTRY_TAG = re.compile(r"<entry[\s>/]", re.IGNORECASE)
_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)

_KNOWN_PUBLISHERS = (
    ("economictimes", "Economic Times"),
    ("moneycontrol", "MoneyControl"),
    ("livemint", "Mint"),
    ("business-standard", "Business Standard"),
    ("ndtvprofit", "NDTV Profit"),
)


@dataclass
class ParsedFeed:
    schema: Schema
    entries: List[Dict[str, Any]] = field(default_factory=list)
    title: Optional[str] = None


def looks_like_feed(text: str) -> bool:
    """Loose shape sniff: does the body resemble an RSS/Atom document at all."""
    return any(marker in text for marker in ("<?xml", "<rss", "<feed"))


def detect_feed_schema(text: str) -> Schema:
    """Item elements win; entry elements are the fallback. Neither means an empty item feed."""
    if _ITEM_TAG.search(text):
        return Schema.ITEM
    if _ENTRY_TAG.search(text):
        return Schema.ENTRY
    return Schema.ITEM


def parse_feed_document(text: str) -> ParsedFeed:
    """
    Parse a feed body into its raw entries.

    Raises MalformedDocument when the body does not look like a feed, or when
    feedparser rejects it without recovering any entry.
    """
    if not text or not looks_like_feed(text):
        raise MalformedDocument("Body does not look like an RSS/Atom document")

    feed = feedparser.parse(text)
    entries = getattr(feed, "entries", None)
    if not isinstance(entries, list):
        raise MalformedDocument("Feed has no entry list")
    if getattr(feed, "bozo", 0) and not entries:
        exc = getattr(feed, "bozo_exception", None)
        msg = "Invalid RSS/Atom document"
        if exc:
            msg += f" ({exc})"
        raise MalformedDocument(msg)

    title = None
    meta = getattr(feed, "feed", None) or {}
    if isinstance(meta.get("title"), str) and meta.get("title").strip():
        title = meta.get("title").strip()
    return ParsedFeed(schema=detect_feed_schema(text), entries=entries, title=title)


def feed_source_name(feed_url: str, feed_title: Optional[str] = None) -> str:
    u = feed_url.lower()
    for needle, name in _KNOWN_PUBLISHERS:
        if needle in u:
            return name
    if feed_title:
        return feed_title
    host = urlparse(feed_url).netloc
    return host or "News Source"


def _struct_to_datetime(val: Any) -> Optional[datetime]:
    if isinstance(val, time.struct_time):
        try:
            return datetime.fromtimestamp(calendar.timegm(val), tz=timezone.utc)
        except (OverflowError, ValueError):
            return None
    return None


def _to_datetime(entry: Dict[str, Any], keys: Tuple[str, ...]) -> Optional[datetime]:
    for key in keys:
        dt = _struct_to_datetime(entry.get(f"{key}_parsed"))
        if dt:
            return dt
    for key in keys:
        dt = parse_timestamp(entry.get(key))
        if dt:
            return dt
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a free-form timestamp string into an aware UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = dateutil_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def first_image_in_markup(markup: str) -> Optional[str]:
    m = _IMG_SRC.search(markup or "")
    return m.group(1) if m else None


def _enclosure_url(entry: Dict[str, Any]) -> Optional[str]:
    for key in ("enclosures", "media_content", "media_thumbnail"):
        values = entry.get(key)
        if isinstance(values, list):
            for v in values:
                if not isinstance(v, dict):
                    continue
                url = v.get("href") or v.get("url")
                if isinstance(url, str) and url.strip():
                    return url.strip()
    for link in entry.get("links") or []:
        if isinstance(link, dict) and link.get("rel") == "enclosure" and link.get("href"):
            return link["href"]
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_item_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    description = _text(entry.get("summary") or entry.get("description"))
    return {
        "title": _text(entry.get("title")),
        "description": description,
        "link": _text(entry.get("link") or entry.get("feedburner_origlink")),
        "published_at": _to_datetime(entry, ("published", "updated")),
        "image_url": _enclosure_url(entry),
        "source": None,
    }


def parse_atom_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    description = _text(entry.get("summary"))
    if not description:
        content = entry.get("content")
        if isinstance(content, list) and content and isinstance(content[0], dict):
            description = _text(content[0].get("value"))
    link = _text(entry.get("link"))
    if not link:
        for candidate in entry.get("links") or []:
            if isinstance(candidate, dict) and candidate.get("href"):
                link = candidate["href"]
                break
    return {
        "title": _text(entry.get("title")),
        "description": description,
        "link": link,
        "published_at": _to_datetime(entry, ("updated", "published")),
        "image_url": _enclosure_url(entry),
        "source": None,
    }


def parse_gnews_article(article: Dict[str, Any]) -> Dict[str, Any]:
    src = article.get("source") or {}
    name = src.get("name") if isinstance(src, dict) else None
    return {
        "title": _text(article.get("title")),
        "description": _text(article.get("description") or article.get("content")),
        "link": _text(article.get("url")),
        "published_at": parse_timestamp(article.get("publishedAt")),
        "image_url": _text(article.get("image")) or None,
        "source": _text(name) or "GNews",
    }


def parse_newsdata_article(article: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": _text(article.get("title")),
        "description": _text(article.get("description") or article.get("content")),
        "link": _text(article.get("link")),
        "published_at": parse_timestamp(article.get("pubDate")),
        "image_url": _text(article.get("image_url")) or None,
        "source": _text(article.get("source_id")) or "NewsData",
    }


SCHEMA_PARSERS: Dict[Schema, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    Schema.ITEM: parse_item_entry,
    Schema.ENTRY: parse_atom_entry,
    Schema.GNEWS: parse_gnews_article,
    Schema.NEWSDATA: parse_newsdata_article,
}


def parse_entry(raw: Dict[str, Any], schema: Schema) -> Dict[str, Any]:
    """
    Map a raw upstream record to a dict with the common fields:
    title, description (raw markup), link, published_at (datetime|None), image_url, source.
    """
    return SCHEMA_PARSERS[schema](raw)


def _gnews_response(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    articles = data.get("articles")
    return (articles if isinstance(articles, list) else []), None


def _newsdata_response(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    results = data.get("results")
    token = data.get("nextPage")
    return (results if isinstance(results, list) else []), (str(token) if token else None)


API_RESPONSE_READERS = {
    Schema.GNEWS: _gnews_response,
    Schema.NEWSDATA: _newsdata_response,
}


def read_api_response(schema: Schema, data: Any) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """Return (raw articles, continuation token) from a decoded API body."""
    if schema not in API_RESPONSE_READERS:
        raise ValueError(f"{schema} is not a structured API schema")
    if not isinstance(data, dict):
        raise MalformedDocument("API response is not a JSON object")
    articles, token = API_RESPONSE_READERS[schema](data)
    return [a for a in articles if isinstance(a, dict)], token


@dataclass(frozen=True)
class RawEntry:
    """One upstream record still in its source schema."""
    schema: Schema
    data: Dict[str, Any]
    source: Optional[str] = None
