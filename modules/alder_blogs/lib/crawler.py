# alder_blogs/crawler.py
"""
Incremental crawl of one alder blog.

Pages are walked from ?page=0 upward. Listing pages are newest first, so the
first already-known post ends the crawl for this source: everything after it,
on this page and on later pages, is assumed to be cached already.

Stop conditions:
  - known_post   a post whose url is in the known set
  - empty_page   a page with no parseable posts
  - last_page    the page index reached the first-seen pager "last" hint
  - fetch_error  TransportError; posts collected so far are kept
  - max_pages    optional page ceiling (off unless configured)
"""

from __future__ import annotations

import logging
from collections.abc import Set
from typing import Protocol

from . import logging_bridge
from .http_client import TransportError
from .models import CrawlResult, Source
from .parser import parse_list_page

log = logging.getLogger(__name__)


class PageFetcher(Protocol):
    def fetch_html(self, url: str) -> str: ...


def crawl_source(
    source: Source,
    known_urls: Set[str],
    client: PageFetcher,
    *,
    max_pages: int | None = None,
) -> CrawlResult:
    """
    Return the NEW posts for `source` (page order) plus how the crawl ended.
    `known_urls` is only read here; the caller owns updating it.
    """
    result = CrawlResult(source=source)
    page = 0
    last_page_index: int | None = None

    log.info("Scraping district %d - %s", source.district, source.name)

    while True:
        if max_pages is not None and page >= max_pages:
            result.stop_reason = "max_pages"
            logging_bridge.warning({
                "component": "alder_blogs.crawler",
                "op": "max_pages",
                "district": source.district,
                "max_pages": max_pages,
                "new_posts": len(result.posts),
            })
            break

        url = source.page_url(page)
        try:
            html = client.fetch_html(url)
        except TransportError as e:
            result.stop_reason = "fetch_error"
            result.error = str(e)
            logging_bridge.error({
                "component": "alder_blogs.crawler",
                "op": "fetch",
                "district": source.district,
                "page": page,
                "url": url,
                "status": e.status,
                "error": str(e),
            })
            break
        result.pages_fetched += 1

        parsed = parse_list_page(html, source)

        if last_page_index is None and parsed.last_page_index is not None:
            last_page_index = parsed.last_page_index
            log.debug("District %d: detected %d total pages", source.district, last_page_index + 1)

        if not parsed.posts:
            log.debug("District %d page %d: no posts found", source.district, page)
            result.stop_reason = "empty_page"
            break

        hit_known = False
        new_on_page = 0
        for post in parsed.posts:
            if post.url in known_urls:
                hit_known = True
                break
            result.posts.append(post)
            new_on_page += 1

        log.debug("District %d page %d: %d new posts", source.district, page, new_on_page)

        if hit_known:
            result.stop_reason = "known_post"
            break

        if last_page_index is not None and page >= last_page_index:
            result.stop_reason = "last_page"
            break

        page += 1

    log.info(
        "District %d: %d new posts (%s after %d page(s))",
        source.district,
        len(result.posts),
        result.stop_reason,
        result.pages_fetched,
    )
    return result
