from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit


@dataclass(frozen=True)
class Source:
    """
    One alder blog in the roster.
    - district: council district number (stable identity)
    - name: display name used on every post from this blog
    - blog_url: listing page base URL; pages are requested as ?page=N
    """

    district: int
    name: str
    blog_url: str

    @property
    def origin(self) -> str:
        """Scheme + host of blog_url."""
        parts = urlsplit(self.blog_url)
        return f"{parts.scheme}://{parts.netloc}"

    def page_url(self, page: int) -> str:
        return f"{self.blog_url}?page={page}"


@dataclass(frozen=True)
class Post:
    """
    A single blog post scraped from a listing page.
    Dedupe is by `url` only (exact string match).

    Posts loaded from the cache keep their stored record in `raw` and write it
    back untouched, extra keys included.
    """

    alder_district: int | str
    alder_name: str
    title: str
    url: str
    published_at: str = ""  # ISO-8601 when available, else raw text, else ""
    preview: str | None = None
    raw: Mapping[str, Any] | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        if self.raw is not None:
            return dict(self.raw)
        out: dict[str, Any] = {
            "alderDistrict": self.alder_district,
            "alderName": self.alder_name,
            "title": self.title,
            "url": self.url,
            "publishedAt": self.published_at,
        }
        if self.preview:
            out["preview"] = self.preview
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Post:
        """
        Build a Post from its cache JSON shape.
        Raises ValueError when title or url is missing; every other field is
        taken as stored.
        """
        title = data.get("title")
        url = data.get("url")
        if not isinstance(title, str) or not title.strip() or not isinstance(url, str) or not url.strip():
            raise ValueError("post requires non-empty 'title' and 'url'")
        district = data.get("alderDistrict")
        preview = data.get("preview")
        return cls(
            alder_district=district if isinstance(district, (int, str)) else "",
            alder_name=str(data.get("alderName") or ""),
            title=title,
            url=url,
            published_at=str(data.get("publishedAt") or ""),
            preview=str(preview) if preview else None,
            raw=dict(data),
        )


@dataclass
class ParsedListPage:
    posts: list[Post] = field(default_factory=list)
    last_page_index: int | None = None


@dataclass
class PostsCache:
    posts: list[Post] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"posts": [p.to_dict() for p in self.posts]}


@dataclass
class CrawlResult:
    """
    Outcome of crawling one source.
    - posts: NEW posts only, in page order (newest first)
    - stop_reason: known_post | empty_page | last_page | fetch_error | max_pages
    - error: message for fetch_error, else None
    """

    source: Source
    posts: list[Post] = field(default_factory=list)
    pages_fetched: int = 0
    stop_reason: str = ""
    error: str | None = None
