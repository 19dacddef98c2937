from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.feed import write_feed
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'alder_blogs' module.

    Accepts kwargs (from scheduler/runner/CLI), including:
      cache_path: str = "data/posts.json"
      feed_path: str = "public/feed.xml"
      sources_path: Optional[str]     # roster override (JSON list)
      request_delay_ms: int = 200
      timeout_sec: float = 30
      max_pages: Optional[int]        # per-source page ceiling

      # Stage switches:
      skip_scrape: bool = False       # only regenerate the feed
      skip_feed: bool = False         # only update the cache

    Returns:
      meta dict with counts; the runner logs it.
    Raises:
      FeedInputError when the feed stage has no cached posts to publish.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "alder_blogs.main",
        "op": "start",
        "cache_path": settings.cache_path,
        "feed_path": settings.feed_path,
        "sources_path": settings.sources_path,
        "flags": {
            "skip_scrape": settings.skip_scrape,
            "skip_feed": settings.skip_feed,
            "max_pages": settings.max_pages,
        },
    })

    meta: dict[str, Any] = {"cache_path": settings.cache_path}

    if not settings.skip_scrape:
        summary = _run_engine(settings)
        meta.update(summary.to_dict())

    if not settings.skip_feed:
        meta["feed_items"] = write_feed(
            settings.cache_path,
            settings.feed_path,
            title=settings.feed_title,
            link=settings.feed_link,
            description=settings.feed_description,
        )
        meta["feed_path"] = settings.feed_path

    meta["message"] = _summary_message(meta)
    return meta


def _summary_message(meta: dict[str, Any]) -> str:
    parts = []
    if "new_posts" in meta:
        parts.append(f"{meta['new_posts']} new posts ({meta['total_posts']} cached)")
    if "feed_items" in meta:
        parts.append(f"feed has {meta['feed_items']} items")
    return "; ".join(parts) or "nothing to do"
