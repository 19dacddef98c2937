# alder_blogs/http_client.py
from __future__ import annotations

import logging
import time
from collections.abc import Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DEFAULT_TIMEOUT_SEC, request_delay_ms_from_env

LOG = logging.getLogger(__name__)

USER_AGENT = "MadisonAlderBlogAggregator/1.0 (civic project)"


class TransportError(Exception):
    """A page could not be fetched: non-2xx response or network failure."""

    def __init__(self, url: str, status: int | None = None, reason: str | None = None) -> None:
        self.url = url
        self.status = status
        self.reason = reason
        if status is not None:
            msg = f"HTTP {status} fetching {url}"
        else:
            msg = f"Network error fetching {url}: {reason}"
        super().__init__(msg)


class HttpClient:
    """
    Page fetcher with a polite pre-request delay.

    The delay is slept before EVERY request (a per-call budget, not a shared
    rate limiter). Failed requests are never retried.
    """

    def __init__(
        self,
        delay_ms: int | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        user_agent: str = USER_AGENT,
    ):
        self.delay_ms = max(int(delay_ms if delay_ms is not None else request_delay_ms_from_env()), 0)
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
        })

        # A failed page is not re-attempted within a run.
        retry = Retry(total=0, raise_on_status=False)
        adapter = HTTPAdapter(max_retries=retry, pool_connections=2, pool_maxsize=2)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---- convenience ----
    def fetch_html(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Sleep the politeness delay, GET, and return decoded text."""
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)

        try:
            resp = self.session.get(url, headers=headers, timeout=timeout or self.timeout)
        except requests.RequestException as e:
            raise TransportError(url, reason=repr(e)) from e

        if not resp.ok:
            raise TransportError(url, status=resp.status_code)

        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        LOG.debug("GET %s -> %d (%d bytes)", url, resp.status_code, len(resp.content or b""))
        return resp.text

    def close(self) -> None:
        self.session.close()
