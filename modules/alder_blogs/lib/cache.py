from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone

from dateutil import parser as date_parser

from . import logging_bridge
from .models import Post, PostsCache

log = logging.getLogger(__name__)


class CacheWriteError(OSError):
    """Raised when the posts cache cannot be persisted."""


# ---- Ordering ---------------------------------------------------------------


# dateutil fills missing fields from `default`; two different defaults expose them.
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)


def parse_published(value: str | None) -> datetime | None:
    """
    Parse a post's published_at into an aware datetime; None when unparseable.
    Naive values are taken as UTC. A value without a full year, month and day
    (e.g. "Jan 27") counts as unparseable so order never depends on the run date.
    """
    if not value or not value.strip():
        return None
    try:
        dt = date_parser.parse(value, default=_DEFAULT_A)
        if dt.date() != date_parser.parse(value, default=_DEFAULT_B).date():
            return None
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def published_sort_key(post: Post) -> tuple[int, float]:
    """
    Ascending key for newest-first order: dated posts by -timestamp, then all
    undated/unparseable posts (group 1).
    """
    dt = parse_published(post.published_at)
    if dt is None:
        return (1, 0.0)
    return (0, -dt.timestamp())


def sort_posts(posts: Iterable[Post]) -> list[Post]:
    """Newest first; unparseable dates last; ties keep input order (stable sort)."""
    return sorted(posts, key=published_sort_key)


def merge_posts(new_posts: Iterable[Post], old_posts: Iterable[Post]) -> list[Post]:
    """New ahead of old, first occurrence of each url wins, then sorted."""
    seen: set[str] = set()
    merged: list[Post] = []
    for p in [*new_posts, *old_posts]:
        if p.url in seen:
            continue
        seen.add(p.url)
        merged.append(p)
    return sort_posts(merged)


def known_urls(cache: PostsCache) -> set[str]:
    return {p.url for p in cache.posts}


# ---- Store ------------------------------------------------------------------


class CacheStore:
    """
    JSON file holding {"posts": [...]}; the single source of truth between runs.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> PostsCache:
        """
        Missing file -> empty cache. Unreadable/corrupt file -> empty cache + warning.
        """
        if not os.path.exists(self.path):
            log.info("No posts cache at %s; starting fresh", self.path)
            return PostsCache()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self._warn_corrupt(repr(e))
            return PostsCache()

        raw_posts = data.get("posts") if isinstance(data, dict) else None
        if not isinstance(raw_posts, list):
            self._warn_corrupt("expected an object with a 'posts' list")
            return PostsCache()

        posts: list[Post] = []
        dropped = 0
        for item in raw_posts:
            if not isinstance(item, dict):
                dropped += 1
                continue
            try:
                posts.append(Post.from_dict(item))
            except (TypeError, ValueError):
                dropped += 1
        if dropped:
            logging_bridge.warning({
                "component": "alder_blogs.cache",
                "op": "load",
                "path": self.path,
                "dropped_entries": dropped,
            })
        log.info("Loaded %d existing posts from %s", len(posts), self.path)
        return PostsCache(posts=posts)

    def save(self, cache: PostsCache) -> None:
        """
        Write to a temp file beside the target, fsync, then os.replace() over it.
        Readers see either the old file or the complete new one.
        """
        directory = os.path.dirname(os.path.abspath(self.path)) or "."
        text = json.dumps(cache.to_dict(), ensure_ascii=False, indent=2)

        tmp_path: str | None = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".posts-", suffix=".json.tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o644)  # mkstemp creates 0600
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            logging_bridge.error({
                "component": "alder_blogs.cache",
                "op": "save",
                "path": self.path,
                "error": repr(e),
            })
            raise CacheWriteError(f"could not write posts cache {self.path}: {e}") from e
        finally:
            if tmp_path is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.remove(tmp_path)

        log.info("Updated cache with %d total posts at %s", len(cache.posts), self.path)

    def _warn_corrupt(self, reason: str) -> None:
        logging_bridge.warning({
            "component": "alder_blogs.cache",
            "op": "load",
            "path": self.path,
            "reason": reason,
            "message": "could not parse existing cache, starting fresh",
        })
