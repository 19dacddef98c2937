# tests/test_cache.py
import json
import os
import stat

import pytest

from modules.alder_blogs.lib.cache import CacheStore, CacheWriteError, merge_posts, parse_published, sort_posts
from modules.alder_blogs.lib.models import Post, PostsCache


def _post(slug, published_at="", district=4, preview=None):
    return Post(
        alder_district=district,
        alder_name=f"District {district} Alder",
        title=slug.title(),
        url=f"https://www.cityofmadison.com/council/district{district}/blog/{slug}",
        published_at=published_at,
        preview=preview,
    )


# ----------------------------------------------------------------------
# Load
# ----------------------------------------------------------------------
def test_missing_file_loads_empty(tmp_path):
    store = CacheStore(str(tmp_path / "posts.json"))
    assert not store.exists()
    assert store.load().posts == []


@pytest.mark.parametrize("content", ["{not json", "[]", '{"posts": "nope"}'])
def test_corrupt_file_loads_empty(tmp_path, content):
    path = tmp_path / "posts.json"
    path.write_text(content, encoding="utf-8")

    assert CacheStore(str(path)).load().posts == []


def test_invalid_entries_are_dropped(tmp_path):
    path = tmp_path / "posts.json"
    path.write_text(
        json.dumps({
            "posts": [
                {"alderDistrict": 4, "alderName": "A", "title": "Good", "url": "https://x/1", "publishedAt": ""},
                {"alderDistrict": 4, "alderName": "A", "title": "", "url": "https://x/2"},
                "garbage",
            ]
        }),
        encoding="utf-8",
    )

    posts = CacheStore(str(path)).load().posts

    assert [p.title for p in posts] == ["Good"]


# ----------------------------------------------------------------------
# Save
# ----------------------------------------------------------------------
def test_save_writes_pretty_json_and_cleans_temp(tmp_path):
    path = tmp_path / "nested" / "posts.json"
    store = CacheStore(str(path))

    store.save(PostsCache(posts=[_post("budget", "2024-01-15T10:30:00-06:00", preview="Café update")]))

    text = path.read_text(encoding="utf-8")
    assert text.startswith('{\n  "posts": [')
    assert "Café" in text
    assert json.loads(text)["posts"][0] == {
        "alderDistrict": 4,
        "alderName": "District 4 Alder",
        "title": "Budget",
        "url": "https://www.cityofmadison.com/council/district4/blog/budget",
        "publishedAt": "2024-01-15T10:30:00-06:00",
        "preview": "Café update",
    }
    assert os.listdir(path.parent) == ["posts.json"]
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644


def test_save_then_load_round_trips(tmp_path):
    store = CacheStore(str(tmp_path / "posts.json"))
    posts = [_post("a", "2024-02-01"), _post("b", "")]

    store.save(PostsCache(posts=posts))

    assert store.load().posts == posts


def test_load_merge_save_keeps_stored_entries_as_they_were(tmp_path):
    path = tmp_path / "posts.json"
    stored = [
        {
            "alderDistrict": "4",
            "alderName": "A",
            "title": "With photo",
            "url": "https://x/1",
            "publishedAt": "2024-01-12",
            "photoUrl": "https://x/1.jpg",
        },
        {
            "alderDistrict": "D4",
            "alderName": "A",
            "title": "Odd district",
            "url": "https://x/2",
            "publishedAt": "2024-01-11",
        },
        {"alderDistrict": None, "alderName": None, "title": "Nulls", "url": "https://x/3", "publishedAt": "2024-01-10"},
    ]
    path.write_text(json.dumps({"posts": stored}), encoding="utf-8")
    store = CacheStore(str(path))

    merged = merge_posts([_post("fresh", "2024-02-01")], store.load().posts)
    store.save(PostsCache(posts=merged))

    saved = json.loads(path.read_text(encoding="utf-8"))["posts"]
    assert saved[0]["title"] == "Fresh"
    assert saved[1:] == stored


def test_failed_replace_keeps_old_file(tmp_path, monkeypatch):
    path = tmp_path / "posts.json"
    path.write_text('{"posts": []}', encoding="utf-8")

    def _boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", _boom)
    with pytest.raises(CacheWriteError):
        CacheStore(str(path)).save(PostsCache(posts=[_post("a")]))

    assert path.read_text(encoding="utf-8") == '{"posts": []}'
    assert os.listdir(tmp_path) == ["posts.json"]


# ----------------------------------------------------------------------
# Ordering / merge
# ----------------------------------------------------------------------
def test_parse_published_treats_naive_as_utc():
    dt = parse_published("2024-01-15T10:30:00")
    assert dt.utcoffset().total_seconds() == 0
    assert parse_published("not a date") is None
    assert parse_published("") is None


def test_partial_dates_do_not_borrow_the_current_year():
    assert parse_published("Jan 27") is None
    assert parse_published("January 2024") is None
    assert parse_published("January 27, 2024").date().isoformat() == "2024-01-27"


def test_sort_newest_first_with_unparseable_last():
    old = _post("old", "2023-12-01T00:00:00Z")
    new = _post("new", "2024-01-15T10:30:00-06:00")
    blank = _post("blank", "")
    junk = _post("junk", "sometime last week")

    ordered = sort_posts([blank, old, junk, new])

    assert [p.title for p in ordered] == ["New", "Old", "Blank", "Junk"]


def test_sort_compares_instants_across_offsets():
    # 10:30-06:00 is 16:30 UTC
    chicago = _post("chicago", "2024-01-15T10:30:00-06:00")
    utc = _post("utc", "2024-01-15T16:00:00Z")

    assert [p.title for p in sort_posts([utc, chicago])] == ["Chicago", "Utc"]


def test_merge_dedupes_by_url_new_wins_and_ties_keep_new_first():
    old_same = _post("same", "2024-01-10")
    refreshed = Post(
        alder_district=4,
        alder_name="Renamed",
        title="Same",
        url=old_same.url,
        published_at="2024-01-10",
    )
    older_tie = _post("tie-old", "2024-01-10")
    newer_tie = _post("tie-new", "2024-01-10")

    merged = merge_posts([refreshed, newer_tie], [old_same, older_tie])

    assert [p.url for p in merged] == [refreshed.url, newer_tie.url, older_tie.url]
    assert merged[0].alder_name == "Renamed"
