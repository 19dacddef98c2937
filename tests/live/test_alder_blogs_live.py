# tests/live/test_alder_blogs_live.py
"""
Live checks against cityofmadison.com. Opt in with --live or RUN_LIVE_TESTS=1.

These only assert the page shape the parser depends on; post counts change.
"""

from __future__ import annotations

import pytest

from modules.alder_blogs.lib.crawler import crawl_source
from modules.alder_blogs.lib.http_client import HttpClient
from modules.alder_blogs.lib.parser import parse_list_page
from modules.alder_blogs.lib.sources import load_sources

pytestmark = pytest.mark.live


@pytest.fixture(scope="module")
def client():
    with HttpClient(delay_ms=500) as c:
        yield c


def test_first_listing_page_parses(client):
    source = load_sources()[0]

    parsed = parse_list_page(client.fetch_html(source.page_url(0)), source)

    assert parsed.posts, f"no posts parsed from {source.page_url(0)}"
    for post in parsed.posts:
        assert post.url.startswith("http")
        assert post.title


def test_single_page_crawl(client):
    source = load_sources()[3]

    result = crawl_source(source, set(), client, max_pages=1)

    assert result.stop_reason in {"max_pages", "last_page", "empty_page"}
    assert result.pages_fetched == 1
