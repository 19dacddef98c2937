# tests/test_crawler.py
from modules.alder_blogs.lib.crawler import crawl_source
from modules.alder_blogs.lib.http_client import TransportError


def _url(source, page):
    return source.page_url(page)


def _abs(source, entry):
    return source.origin + entry["href"]


# ----------------------------------------------------------------------
# known_post
# ----------------------------------------------------------------------
def test_stops_at_first_known_post_without_fetching_further(district4, listing_html, listing_entry, fake_fetcher):
    entries = [listing_entry(n) for n in range(1, 6)]
    fetcher = fake_fetcher({
        _url(district4, 0): listing_html(entries, last_page=3),
        _url(district4, 1): listing_html([listing_entry(n) for n in range(6, 11)], last_page=3),
    })
    known = {_abs(district4, entries[1])}

    result = crawl_source(district4, known, fetcher)

    assert [p.title for p in result.posts] == ["Post 1"]
    assert result.stop_reason == "known_post"
    assert fetcher.calls == [_url(district4, 0)]


def test_known_set_is_not_mutated(district4, listing_html, listing_entry, fake_fetcher):
    fetcher = fake_fetcher({_url(district4, 0): listing_html([listing_entry(1)], last_page=0)})
    known = {"https://example.com/unrelated"}

    crawl_source(district4, known, fetcher)

    assert known == {"https://example.com/unrelated"}


# ----------------------------------------------------------------------
# empty_page / last_page
# ----------------------------------------------------------------------
def test_empty_page_ends_crawl(district4, listing_html, listing_entry, fake_fetcher):
    fetcher = fake_fetcher({
        _url(district4, 0): listing_html([listing_entry(1), listing_entry(2)]),
        _url(district4, 1): listing_html([]),
    })

    result = crawl_source(district4, set(), fetcher)

    assert len(result.posts) == 2
    assert result.stop_reason == "empty_page"
    assert result.pages_fetched == 2


def test_last_page_hint_ends_crawl(district4, listing_html, listing_entry, fake_fetcher):
    fetcher = fake_fetcher({
        _url(district4, 0): listing_html([listing_entry(1)], last_page=1),
        _url(district4, 1): listing_html([listing_entry(2)], last_page=1),
    })

    result = crawl_source(district4, set(), fetcher)

    assert [p.title for p in result.posts] == ["Post 1", "Post 2"]
    assert result.stop_reason == "last_page"
    assert fetcher.calls == [_url(district4, 0), _url(district4, 1)]


def test_first_seen_hint_wins_over_later_pages(district4, listing_html, listing_entry, fake_fetcher):
    # Page 1 claims more pages exist; the hint from page 0 still governs.
    fetcher = fake_fetcher({
        _url(district4, 0): listing_html([listing_entry(1)], last_page=1),
        _url(district4, 1): listing_html([listing_entry(2)], last_page=5),
        _url(district4, 2): listing_html([listing_entry(3)], last_page=5),
    })

    result = crawl_source(district4, set(), fetcher)

    assert result.stop_reason == "last_page"
    assert _url(district4, 2) not in fetcher.calls


def test_hint_picked_up_on_later_page(district4, listing_html, listing_entry, fake_fetcher):
    fetcher = fake_fetcher({
        _url(district4, 0): listing_html([listing_entry(1)]),
        _url(district4, 1): listing_html([listing_entry(2)], last_page=1),
    })

    result = crawl_source(district4, set(), fetcher)

    assert result.stop_reason == "last_page"
    assert len(result.posts) == 2


# ----------------------------------------------------------------------
# fetch_error / max_pages
# ----------------------------------------------------------------------
def test_fetch_error_keeps_posts_collected_so_far(district4, listing_html, listing_entry, fake_fetcher):
    fetcher = fake_fetcher({
        _url(district4, 0): listing_html([listing_entry(1), listing_entry(2)]),
        _url(district4, 1): TransportError(_url(district4, 1), status=503),
    })

    result = crawl_source(district4, set(), fetcher)

    assert [p.title for p in result.posts] == ["Post 1", "Post 2"]
    assert result.stop_reason == "fetch_error"
    assert "503" in result.error
    assert result.pages_fetched == 1


def test_first_page_failure_yields_no_posts(district4, fake_fetcher):
    result = crawl_source(district4, set(), fake_fetcher({}))

    assert result.posts == []
    assert result.stop_reason == "fetch_error"
    assert "404" in result.error


def test_max_pages_ceiling(district4, listing_html, listing_entry, fake_fetcher):
    fetcher = fake_fetcher({_url(district4, p): listing_html([listing_entry(p + 1)]) for p in range(5)})

    result = crawl_source(district4, set(), fetcher, max_pages=2)

    assert len(result.posts) == 2
    assert result.stop_reason == "max_pages"
    assert len(fetcher.calls) == 2
