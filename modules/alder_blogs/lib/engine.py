"""
Engine for the alder blog aggregation run.

Features:
  - Sequential crawl of every source in roster order (no parallel fetches)
  - One known-url set threaded through the whole run, so a post cross-posted
    under two districts is only recorded once
  - Per-source failure isolation
  - Single cache write at the end, and none at all when nothing is new
  - Comprehensive logging via `logging_bridge`
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from . import logging_bridge
from .cache import CacheStore, merge_posts
from .cache import known_urls as cache_known_urls
from .config import Settings
from .crawler import PageFetcher, crawl_source
from .http_client import HttpClient
from .models import CrawlResult, Post, PostsCache, Source
from .sources import load_sources

log = logging.getLogger(__name__)

CrawlFunc = Callable[..., CrawlResult]


@dataclass
class AggregationSummary:
    new_posts: int = 0
    total_posts: int = 0
    written: bool = False
    by_source: dict[int, int] = field(default_factory=dict)
    stop_reasons: dict[int, str] = field(default_factory=dict)
    errors: dict[int, str] = field(default_factory=dict)
    duration_us: int = 0

    def to_dict(self) -> dict:
        return {
            "new_posts": self.new_posts,
            "total_posts": self.total_posts,
            "written": self.written,
            "by_source": {str(k): v for k, v in self.by_source.items()},
            "stop_reasons": {str(k): v for k, v in self.stop_reasons.items()},
            "errors": {str(k): v for k, v in self.errors.items()},
            "duration_us": self.duration_us,
        }


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_aggregation(
    sources: Sequence[Source],
    store: CacheStore,
    client: PageFetcher,
    *,
    max_pages: int | None = None,
    crawl: CrawlFunc | None = None,
) -> AggregationSummary:
    """
    Crawl all sources against the cached history and persist the merged result.

    Args:
        sources: roster, crawled strictly in this order
        store: cache to read once and write at most once
        client: page fetcher shared by every crawl
        max_pages: optional per-source page ceiling
        crawl: optional override of `crawl_source` (for testing)

    Returns:
        AggregationSummary (written=False when nothing new was found).
    """
    start_ns = time.perf_counter_ns()
    crawl_func = crawl or crawl_source

    cache: PostsCache = store.load()
    known: set[str] = cache_known_urls(cache)
    summary = AggregationSummary(total_posts=len(cache.posts))

    log.info("Loaded %d existing posts; scraping %d blogs for new posts", len(cache.posts), len(sources))

    # -------------------------------------------------------------------------
    # CRAWL SOURCES (sequential; the known set grows as we go)
    # -------------------------------------------------------------------------
    all_new: list[Post] = []
    for source in sources:
        try:
            result = crawl_func(source, known, client, max_pages=max_pages)
        except Exception as e:
            summary.errors[source.district] = repr(e)
            summary.stop_reasons[source.district] = "error"
            logging_bridge.error({
                "component": "alder_blogs.engine",
                "op": "crawl_source",
                "district": source.district,
                "error": repr(e),
            })
            continue

        all_new.extend(result.posts)
        known.update(p.url for p in result.posts)

        summary.by_source[source.district] = len(result.posts)
        summary.stop_reasons[source.district] = result.stop_reason
        if result.error:
            summary.errors[source.district] = result.error

    summary.new_posts = len(all_new)

    # -------------------------------------------------------------------------
    # MERGE + PERSIST (only when something is new)
    # -------------------------------------------------------------------------
    if all_new:
        merged = merge_posts(all_new, cache.posts)
        store.save(PostsCache(posts=merged))
        summary.total_posts = len(merged)
        summary.written = True
        log.info("Found %d new posts; cache now holds %d", summary.new_posts, summary.total_posts)
    else:
        log.info("No new posts found. Cache unchanged.")

    summary.duration_us = int((time.perf_counter_ns() - start_ns) // 1000)

    # -------------------------------------------------------------------------
    # SUMMARY LOG (always emitted)
    # -------------------------------------------------------------------------
    logging_bridge.activity({
        "component": "alder_blogs.engine",
        "op": "summary",
        "cache_path": store.path,
        **summary.to_dict(),
    })
    return summary


def run_once(
    settings: Settings,
    client_factory: Callable[[Settings], PageFetcher] | None = None,
) -> AggregationSummary:
    """
    Build roster, fetcher and store from settings and run one aggregation.

    Args:
        settings: validated module settings
        client_factory: optional override to inject a fetcher (for testing)
    """
    sources = load_sources(settings.sources_path)
    store = CacheStore(settings.cache_path)
    client = (client_factory or _default_client)(settings)
    try:
        return run_aggregation(sources, store, client, max_pages=settings.max_pages)
    finally:
        close = getattr(client, "close", None)
        if callable(close):
            close()


def _default_client(settings: Settings) -> HttpClient:
    return HttpClient(delay_ms=settings.request_delay_ms, timeout=settings.timeout_sec)
