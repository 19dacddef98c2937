# modules/alder_blogs/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .cache import CacheStore, CacheWriteError
from .config import ConfigError, Settings
from .crawler import crawl_source
from .engine import AggregationSummary, run_aggregation, run_once
from .feed import FeedInputError, generate_feed, write_feed
from .http_client import HttpClient, TransportError
from .models import CrawlResult, ParsedListPage, Post, PostsCache, Source
from .parser import extract_page_number, parse_list_page

__all__ = [
    "AggregationSummary",
    "CacheStore",
    "CacheWriteError",
    "ConfigError",
    "CrawlResult",
    "FeedInputError",
    "HttpClient",
    "ParsedListPage",
    "Post",
    "PostsCache",
    "Settings",
    "Source",
    "TransportError",
    "crawl_source",
    "extract_page_number",
    "generate_feed",
    "parse_list_page",
    "run_aggregation",
    "run_once",
    "write_feed",
]
