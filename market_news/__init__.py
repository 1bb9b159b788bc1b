"""
market_news

Market news ingestion and aggregation: pulls headlines from structured news APIs
and from RSS/Atom feeds reached through rotating relays, and returns normalized
news items plus a composite market sentiment score.

Core ideas:
- Input: feed URLs, relay templates, structured API descriptors
- Process: fetch → parse → normalize → classify → deduplicate → sort (newest first)
- Output: PipelineSnapshot (canonical items, visible window) and SentimentReading

Example
-------
import asyncio
from market_news import NewsPipeline, load_config

async def main():
    pipeline = NewsPipeline(load_config())
    snap = await pipeline.refresh()
    for item in snap.visible:
        print(item.published_at, item.category, item.source, item.title)
    print(await pipeline.load_more())
    reading = await pipeline.sentiment()
    print(reading.score, reading.label)

asyncio.run(main())
"""
from .config import ApiProvider, PipelineConfig, load_config
from .core import NewsPipeline
from .models import IndexSnapshot, NewsItem
from .pagination import LoadMoreResult, LoadMoreStatus, get_visible_window
from .sentiment import SentimentReading, compute_sentiment
from .state import PipelineSnapshot

__all__ = [
    "ApiProvider",
    "IndexSnapshot",
    "LoadMoreResult",
    "LoadMoreStatus",
    "NewsItem",
    "NewsPipeline",
    "PipelineConfig",
    "PipelineSnapshot",
    "SentimentReading",
    "compute_sentiment",
    "get_visible_window",
    "load_config",
]
