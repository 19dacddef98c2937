from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from datetime import datetime, timezone
from email.utils import format_datetime

from . import logging_bridge, utils
from .cache import parse_published
from .config import DEFAULT_FEED_DESCRIPTION, DEFAULT_FEED_LINK, DEFAULT_FEED_TITLE
from .models import Post

log = logging.getLogger(__name__)

FEED_ITEM_LIMIT = 100


class FeedInputError(RuntimeError):
    """The posts cache needed to build the feed is missing or empty."""


def to_rfc822(value: str | None) -> str:
    """
    RFC 822 date in GMT (e.g. "Mon, 15 Jan 2024 16:30:00 GMT"); "" when unparseable.
    """
    dt = parse_published(value)
    if dt is None:
        return ""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def build_item(post: Post) -> str:
    if post.preview:
        description = utils.esc_xml(post.preview)
    else:
        district = utils.esc_xml(post.alder_district)
        description = f"Blog post from District {district} Alder {utils.esc_xml(post.alder_name)}"

    lines = [
        "    <item>",
        f"      <title>{utils.esc_xml(post.title)}</title>",
        f"      <link>{utils.esc_xml(post.url)}</link>",
        f'      <guid isPermaLink="true">{utils.esc_xml(post.url)}</guid>',
    ]
    pub_date = to_rfc822(post.published_at)
    if pub_date:
        lines.append(f"      <pubDate>{pub_date}</pubDate>")
    lines.extend([
        f"      <description>{description}</description>",
        f"      <author>District {utils.esc_xml(post.alder_district)} - {utils.esc_xml(post.alder_name)}</author>",
        "    </item>",
    ])
    return "\n".join(lines)


def generate_feed(
    posts: Sequence[Post],
    *,
    now: datetime | None = None,
    limit: int = FEED_ITEM_LIMIT,
    title: str = DEFAULT_FEED_TITLE,
    link: str = DEFAULT_FEED_LINK,
    description: str = DEFAULT_FEED_DESCRIPTION,
) -> str:
    """
    Render an RSS 2.0 document from posts that are already sorted newest first.
    Only the first `limit` posts are included.
    """
    built = format_datetime((now or datetime.now(timezone.utc)).astimezone(timezone.utc), usegmt=True)
    items = "\n".join(build_item(p) for p in posts[:limit])
    self_link = f"{link.rstrip('/')}/feed.xml"

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">\n'
        "  <channel>\n"
        f"    <title>{utils.esc_xml(title)}</title>\n"
        f"    <link>{utils.esc_xml(link)}</link>\n"
        f"    <description>{utils.esc_xml(description)}</description>\n"
        "    <language>en-us</language>\n"
        f"    <lastBuildDate>{built}</lastBuildDate>\n"
        f'    <atom:link href="{utils.esc_xml(self_link)}" rel="self" type="application/rss+xml"/>\n'
        f"{items}\n"
        "  </channel>\n"
        "</rss>\n"
    )


def read_cached_posts(cache_path: str) -> list[Post]:
    """
    Strict read for feed generation: unlike CacheStore.load(), a missing or
    empty cache is an error here.
    """
    if not os.path.exists(cache_path):
        raise FeedInputError(f"{cache_path} not found. Run the scraper first.")
    try:
        with open(cache_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise FeedInputError(f"{cache_path} is not valid JSON: {e}") from e

    raw_posts = data.get("posts") if isinstance(data, dict) else None
    if not raw_posts:
        raise FeedInputError(f"No posts found in {cache_path}")

    posts: list[Post] = []
    for item in raw_posts:
        if isinstance(item, dict):
            try:
                posts.append(Post.from_dict(item))
            except (TypeError, ValueError):
                continue
    if not posts:
        raise FeedInputError(f"No posts found in {cache_path}")
    return posts


def write_feed(
    cache_path: str,
    feed_path: str,
    *,
    title: str = DEFAULT_FEED_TITLE,
    link: str = DEFAULT_FEED_LINK,
    description: str = DEFAULT_FEED_DESCRIPTION,
) -> int:
    """
    Generate the feed from the cache file and write it. Returns the item count.
    Raises FeedInputError when the cache is missing or empty.
    """
    posts = read_cached_posts(cache_path)
    xml = generate_feed(posts, title=title, link=link, description=description)

    out_dir = os.path.dirname(os.path.abspath(feed_path))
    os.makedirs(out_dir, exist_ok=True)
    with open(feed_path, "w", encoding="utf-8") as f:
        f.write(xml)

    count = min(len(posts), FEED_ITEM_LIMIT)
    log.info("RSS feed written to %s (%d items)", feed_path, count)
    logging_bridge.activity({
        "component": "alder_blogs.feed",
        "op": "write",
        "feed_path": feed_path,
        "posts": len(posts),
        "items": count,
    })
    return count
