"""
Fetch market news once and print it.

Usage:
  python -m market_news
  python -m market_news --category ipo --pages 2
  python -m market_news --search "RBI Policy" --sentiment
  python -m market_news --json
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import List, Optional

from . import NewsPipeline, load_config
from .models import ALL_CATEGORIES, CATEGORIES, NewsItem


def _item_json(item: NewsItem) -> dict:
    out = asdict(item)
    out["published_at"] = item.published_at.isoformat()
    return out


def _print_items(items: List[NewsItem]) -> None:
    if not items:
        print("No news found. Sources may be unavailable; try again later.")
        return
    for item in items:
        mark = "*" if item.is_featured else " "
        print(f"{mark} {item.published_at:%Y-%m-%d %H:%M}  [{item.category}]  {item.source}  {item.title}")


async def run(args: argparse.Namespace) -> int:
    pipeline = NewsPipeline(load_config(args.env_file))
    await pipeline.refresh()

    if args.search:
        pipeline.search(args.search)
    elif args.category != ALL_CATEGORIES:
        pipeline.set_category(args.category)

    for _ in range(max(0, args.pages - 1)):
        result = await pipeline.load_more()
        if result.can_retry:
            break

    snap = pipeline.snapshot()
    reading = await pipeline.sentiment() if args.sentiment else None

    if args.json:
        payload = {
            "status": snap.status,
            "category": snap.category,
            "search": snap.search,
            "page_index": snap.page_index,
            "total": len(snap.items),
            "visible": [_item_json(it) for it in snap.visible],
        }
        if reading:
            payload["sentiment"] = asdict(reading)
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        _print_items(list(snap.visible))
        if reading:
            print(f"\nSentiment: {reading.score} ({reading.label})"
                  f"  market={reading.market} news={reading.news} breadth={reading.breadth}")
    return 1 if snap.is_empty else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="market_news", description="Aggregate market news headlines.")
    parser.add_argument("--category", default=ALL_CATEGORIES, choices=(ALL_CATEGORIES,) + CATEGORIES)
    parser.add_argument("--pages", type=int, default=1, help="Number of pages to show")
    parser.add_argument("--search", help="Only show items mentioning this topic")
    parser.add_argument("--sentiment", action="store_true", help="Also compute market sentiment")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
