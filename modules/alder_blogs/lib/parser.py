# alder_blogs/parser.py
"""
Listing-page parser for the City of Madison council blogs.

A listing page looks like:

    <div id="block-city-front-content">
      <div class="content-blog-summary">
        <ul class="cards">
          <li>
            <h3 class="article-title"><a href="/council/district4/blog/...">Title</a></h3>
            <time><span class="datetime" datetime="2024-01-15T10:30:00-06:00">January 15, 2024</span></time>
            <div class="article-content">Preview text</div>
          </li>
          ...
        </ul>
      </div>
      <nav class="pager">... <li class="pager__item--last"><a href="?page=7">Last</a></li> ...</nav>
    </div>

Posts come newest first within a page.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .models import ParsedListPage, Post, Source

POST_ITEM = "#block-city-front-content .content-blog-summary .cards li"
POST_TITLE = ".article-title a"
POST_DATE = "time .datetime"
POST_PREVIEW = ".article-content"
LAST_PAGE_LINK = "#block-city-front-content nav.pager .pager__item--last a"

_PAGE_PARAM_RE = re.compile(r"[?&]page=(\d+)")


def extract_page_number(href: str | None) -> int | None:
    """
    Page index from a pager href like "/council/district4/blog?page=N".
    Returns None when there is no numeric `page` query parameter.
    """
    if not href:
        return None
    m = _PAGE_PARAM_RE.search(href)
    if not m:
        return None
    return int(m.group(1))


def absolutize(href: str, base: str) -> str:
    """Keep absolute http(s) links verbatim; resolve anything else against `base`."""
    if href.startswith("http"):
        return href
    return urljoin(base, href)


def _text(el: Tag) -> str:
    # Text nodes join as-is (inline markup adds no spaces); runs of whitespace collapse.
    return " ".join(el.get_text().split())


def parse_list_page(html: str, source: Source) -> ParsedListPage:
    """
    Extract posts (page order) and the last-page hint from one listing page.
    Items without a title or href are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")

    posts: list[Post] = []
    for item in soup.select(POST_ITEM):
        post = _parse_item(item, source)
        if post is not None:
            posts.append(post)

    last_link = soup.select_one(LAST_PAGE_LINK)
    last_href = last_link.get("href") if last_link is not None else None
    return ParsedListPage(posts=posts, last_page_index=extract_page_number(last_href))


def _parse_item(item: Tag, source: Source) -> Post | None:
    link = item.select_one(POST_TITLE)
    if link is None:
        return None

    title = _text(link)
    href = (link.get("href") or "").strip()
    if not title or not href:
        return None

    date_el = item.select_one(POST_DATE)
    published_at = ""
    if date_el is not None:
        published_at = (date_el.get("datetime") or "").strip() or _text(date_el)

    preview_el = item.select_one(POST_PREVIEW)
    preview = _text(preview_el) if preview_el is not None else ""

    return Post(
        alder_district=source.district,
        alder_name=source.name,
        title=title,
        url=absolutize(href, source.blog_url),
        published_at=published_at,
        preview=preview or None,
    )
