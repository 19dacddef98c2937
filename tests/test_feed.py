# tests/test_feed.py
import json
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest

from modules.alder_blogs.lib import feed
from modules.alder_blogs.lib.models import Post


def _post(i, published_at="2024-01-15T10:30:00-06:00", **kw):
    base = {
        "alder_district": 4,
        "alder_name": "District 4 Alder",
        "title": f"Post {i}",
        "url": f"https://www.cityofmadison.com/council/district4/blog/post-{i}",
        "published_at": published_at,
    }
    base.update(kw)
    return Post(**base)


def _write_cache(path, posts):
    path.write_text(json.dumps({"posts": [p.to_dict() for p in posts]}), encoding="utf-8")


def test_to_rfc822_converts_to_gmt():
    assert feed.to_rfc822("2024-01-15T10:30:00-06:00") == "Mon, 15 Jan 2024 16:30:00 GMT"
    assert feed.to_rfc822("whenever") == ""


def test_item_escapes_text_and_falls_back_description():
    item = feed.build_item(_post(1, title='Parks & "Rec" <update>', alder_name="O'Brien"))

    assert "<title>Parks &amp; &quot;Rec&quot; &lt;update&gt;</title>" in item
    assert "<description>Blog post from District 4 Alder O&apos;Brien</description>" in item
    assert "<author>District 4 - O&apos;Brien</author>" in item
    assert "<pubDate>Mon, 15 Jan 2024 16:30:00 GMT</pubDate>" in item


def test_item_uses_preview_and_omits_unparseable_date():
    item = feed.build_item(_post(1, published_at="", preview="Snow & ice"))

    assert "<description>Snow &amp; ice</description>" in item
    assert "<pubDate>" not in item


def test_generate_feed_is_well_formed_and_capped(frozen_utc):
    posts = [_post(i) for i in range(150)]

    xml = feed.generate_feed(posts, link="https://feeds.example.org/")
    root = ET.fromstring(xml)
    channel = root.find("channel")

    assert root.tag == "rss" and root.get("version") == "2.0"
    assert len(channel.findall("item")) == feed.FEED_ITEM_LIMIT
    assert channel.findtext("item/title") == "Post 0"
    assert channel.findtext("lastBuildDate") == "Wed, 01 Jan 2025 00:00:00 GMT"
    atom = channel.find("{http://www.w3.org/2005/Atom}link")
    assert atom.get("href") == "https://feeds.example.org/feed.xml"


def test_generate_feed_with_explicit_now():
    xml = feed.generate_feed([_post(1)], now=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
    assert "<lastBuildDate>Fri, 01 Mar 2024 12:00:00 GMT</lastBuildDate>" in xml


# ----------------------------------------------------------------------
# File-level entrypoint
# ----------------------------------------------------------------------
def test_write_feed_creates_output_dir(tmp_path, frozen_utc):
    cache = tmp_path / "posts.json"
    _write_cache(cache, [_post(1), _post(2)])
    out = tmp_path / "public" / "feed.xml"

    count = feed.write_feed(str(cache), str(out))

    assert count == 2
    assert ET.fromstring(out.read_text(encoding="utf-8")).find("channel/item/link").text.endswith("post-1")


def test_missing_cache_is_an_input_error(tmp_path):
    with pytest.raises(feed.FeedInputError, match="Run the scraper first"):
        feed.write_feed(str(tmp_path / "posts.json"), str(tmp_path / "feed.xml"))
    assert not (tmp_path / "feed.xml").exists()


@pytest.mark.parametrize("content", ['{"posts": []}', "{}", '{"posts": [{"title": ""}]}', "{oops"])
def test_empty_or_unreadable_cache_is_an_input_error(tmp_path, content):
    cache = tmp_path / "posts.json"
    cache.write_text(content, encoding="utf-8")

    with pytest.raises(feed.FeedInputError):
        feed.read_cached_posts(str(cache))
