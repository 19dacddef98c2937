from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .utils import getenv_str, int_or_default, truthy

DEFAULT_REQUEST_DELAY_MS = 200
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_CACHE_PATH = "data/posts.json"
DEFAULT_FEED_PATH = "public/feed.xml"
DEFAULT_FEED_TITLE = "Madison Alder Blog Aggregator"
DEFAULT_FEED_LINK = "https://example.com"
DEFAULT_FEED_DESCRIPTION = "Aggregated blog posts from all 20 Madison Common Council Alders"


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


def request_delay_ms_from_env(default: int = DEFAULT_REQUEST_DELAY_MS) -> int:
    """
    REQUEST_DELAY_MS override; unset or non-numeric falls back to the default.
    """
    return int_or_default(getenv_str("REQUEST_DELAY_MS"), default)


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for an 'alder_blogs' run.

    Every field can come from kwargs (scheduler/CLI) and falls back to an
    environment variable, then to a default:

        cache_path        POSTS_CACHE_PATH      data/posts.json
        feed_path         FEED_PATH             public/feed.xml
        sources_path      SOURCES_PATH          (built-in roster)
        request_delay_ms  REQUEST_DELAY_MS      200
        timeout_sec       REQUEST_TIMEOUT_SEC   30
        max_pages         MAX_PAGES_PER_SOURCE  (unbounded)
    """

    cache_path: str = DEFAULT_CACHE_PATH
    feed_path: str = DEFAULT_FEED_PATH
    sources_path: str | None = None

    # Fetch behavior
    request_delay_ms: int = DEFAULT_REQUEST_DELAY_MS
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    max_pages: int | None = None

    # Stage switches
    skip_scrape: bool = False
    skip_feed: bool = False

    # Feed channel metadata
    feed_title: str = DEFAULT_FEED_TITLE
    feed_link: str = DEFAULT_FEED_LINK
    feed_description: str = DEFAULT_FEED_DESCRIPTION

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation (kwargs win over env).

        Expected kwargs (all optional):

            cache_path: str
            feed_path: str
            sources_path: str
            request_delay_ms: int   # non-numeric -> 200
            timeout_sec: float
            max_pages: int          # <= 0 or empty -> unbounded
            skip_scrape: bool
            skip_feed: bool
            feed_title / feed_link / feed_description: str
        """
        kw = dict(kwargs or {})

        def _pick(key: str, env: str | None = None, default: Any = None) -> Any:
            val = kw.get(key)
            if val is None or (isinstance(val, str) and not val.strip()):
                val = getenv_str(env) if env else None
            if val is None or (isinstance(val, str) and not val.strip()):
                return default
            return val

        cache_path = str(_pick("cache_path", "POSTS_CACHE_PATH", DEFAULT_CACHE_PATH)).strip()
        feed_path = str(_pick("feed_path", "FEED_PATH", DEFAULT_FEED_PATH)).strip()
        sources_path = _pick("sources_path", "SOURCES_PATH")
        sources_path = str(sources_path).strip() if sources_path else None

        request_delay_ms = int_or_default(
            _pick("request_delay_ms", "REQUEST_DELAY_MS"),
            DEFAULT_REQUEST_DELAY_MS,
        )

        raw_timeout = _pick("timeout_sec", "REQUEST_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC)
        try:
            timeout_sec = float(raw_timeout)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"'timeout_sec' must be a number (got {raw_timeout!r}).") from e

        raw_max_pages = _pick("max_pages", "MAX_PAGES_PER_SOURCE")
        max_pages = int_or_default(raw_max_pages, 0) if raw_max_pages is not None else 0

        settings = cls(
            cache_path=cache_path,
            feed_path=feed_path,
            sources_path=sources_path,
            request_delay_ms=max(request_delay_ms, 0),
            timeout_sec=timeout_sec,
            max_pages=max_pages if max_pages > 0 else None,
            skip_scrape=truthy(kw.get("skip_scrape")),
            skip_feed=truthy(kw.get("skip_feed")),
            feed_title=str(kw.get("feed_title") or DEFAULT_FEED_TITLE),
            feed_link=str(kw.get("feed_link") or DEFAULT_FEED_LINK),
            feed_description=str(kw.get("feed_description") or DEFAULT_FEED_DESCRIPTION),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _validate_settings(s: Settings) -> None:
    if not s.cache_path:
        raise ConfigError("'cache_path' cannot be empty.")
    if not s.feed_path:
        raise ConfigError("'feed_path' cannot be empty.")
    if s.timeout_sec <= 0:
        raise ConfigError("'timeout_sec' must be > 0.")
    if s.skip_scrape and s.skip_feed:
        raise ConfigError("'skip_scrape' and 'skip_feed' cannot both be set; nothing would run.")
