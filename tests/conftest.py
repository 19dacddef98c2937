# tests/conftest.py
import os
import tempfile
import warnings

import pytest
from freezegun import freeze_time

from modules.alder_blogs.lib.http_client import TransportError
from modules.alder_blogs.lib.models import Source

warnings.filterwarnings("error", category=DeprecationWarning, module=r"modules\.")


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls to cityofmadison.com).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="alder-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")

    # No politeness sleeps in unit tests
    monkeypatch.setenv("REQUEST_DELAY_MS", "0")
    for name in ("POSTS_CACHE_PATH", "FEED_PATH", "SOURCES_PATH", "MAX_PAGES_PER_SOURCE", "CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------
@pytest.fixture
def district4() -> Source:
    return Source(
        district=4,
        name="District 4 Alder",
        blog_url="https://www.cityofmadison.com/council/district4/blog",
    )


@pytest.fixture
def district7() -> Source:
    return Source(
        district=7,
        name="District 7 Alder",
        blog_url="https://www.cityofmadison.com/council/district7/blog",
    )


@pytest.fixture
def listing_html():
    """
    Build a listing page in the council site's markup.

    posts: list of dicts with keys href, title, date (datetime attr), text (visible date), preview
    last_page: optional index for the pager's "last" link
    """

    def _build(posts, last_page=None, district=4):
        items = []
        for p in posts:
            date_html = ""
            if p.get("date") is not None or p.get("text") is not None:
                attr = f' datetime="{p["date"]}"' if p.get("date") is not None else ""
                date_html = f'<time><span class="datetime"{attr}>{p.get("text", "")}</span></time>'
            preview_html = ""
            if "preview" in p:
                preview_html = f'<div class="article-content">{p["preview"]}</div>'
            items.append(
                "<li>"
                f'<h3 class="article-title"><a href="{p.get("href", "")}">{p.get("title", "")}</a></h3>'
                f"{date_html}{preview_html}"
                "</li>"
            )
        pager = ""
        if last_page is not None:
            pager = (
                '<nav class="pager"><ul>'
                '<li class="pager__item--last">'
                f'<a href="/council/district{district}/blog?page={last_page}">Last</a></li>'
                "</ul></nav>"
            )
        return (
            "<html><body>"
            '<div id="block-city-front-content">'
            '<div class="content-blog-summary"><ul class="cards">'
            + "".join(items)
            + "</ul></div>"
            + pager
            + "</div></body></html>"
        )

    return _build


def _listing_entry(n: int, district: int = 4, day: int | None = None) -> dict:
    """One listing entry; higher n = older (day counts down from 28)."""
    d = day if day is not None else 28 - n
    return {
        "href": f"/council/district{district}/blog/post-{n}",
        "title": f"Post {n}",
        "date": f"2024-01-{d:02d}T10:00:00-06:00",
        "text": f"Jan {d}",
    }


@pytest.fixture
def listing_entry():
    return _listing_entry


class FakeFetcher:
    """
    Stands in for HttpClient: maps url -> html (str) or an exception to raise.
    Unknown urls raise TransportError(404). Every requested url is recorded.
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls: list[str] = []
        self.closed = False

    def fetch_html(self, url: str) -> str:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise TransportError(url, status=404)
        if isinstance(page, BaseException):
            raise page
        return page

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_fetcher():
    return FakeFetcher
