from __future__ import annotations

import json
from typing import Any

from .config import ConfigError
from .models import Source

SITE_ORIGIN = "https://www.cityofmadison.com"
BLOG_URL_TEMPLATE = SITE_ORIGIN + "/council/district{district}/blog"
DISTRICT_COUNT = 20


def _default_roster() -> list[Source]:
    return [
        Source(
            district=d,
            name=f"District {d} Alder",
            blog_url=BLOG_URL_TEMPLATE.format(district=d),
        )
        for d in range(1, DISTRICT_COUNT + 1)
    ]


DEFAULT_SOURCES: tuple[Source, ...] = tuple(_default_roster())


def load_sources(path: str | None = None) -> list[Source]:
    """
    Return the roster in crawl order.

    Without a path, the built-in 20-district roster is used. With a path, the
    file must be a JSON list of {"district", "name", "blog_url"} objects; an
    alder name that changes after an election only needs a roster edit.
    """
    if not path:
        return list(DEFAULT_SOURCES)

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"sources file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"sources file is invalid JSON: {path}") from e

    sources = _parse_sources_list(data)
    if not sources:
        raise ConfigError(f"No sources found in {path}")
    return sources


def _parse_sources_list(value: Any) -> list[Source]:
    if not isinstance(value, list):
        raise ConfigError("Expected a list of source objects.")
    out: list[Source] = []
    seen: set[int] = set()
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            raise ConfigError(f"Item[{i}] must be an object.")
        district = item.get("district")
        name = str(item.get("name") or "").strip()
        blog_url = str(item.get("blog_url") or "").strip()
        if district is None or not name or not blog_url:
            raise ConfigError(f"Item[{i}] requires 'district', 'name' and 'blog_url'.")
        try:
            district = int(district)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Item[{i}].district must be an integer.") from e
        if not blog_url.startswith(("http://", "https://")):
            raise ConfigError(f"Item[{i}].blog_url must be an absolute http(s) URL.")
        if district in seen:
            raise ConfigError(f"Duplicate district {district} in sources.")
        seen.add(district)
        out.append(Source(district=district, name=name, blog_url=blog_url))
    return out
