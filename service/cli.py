# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
scrape
    - Incremental crawl of every alder blog; merges new posts into the cache
    - Exit 0 even when individual blogs failed (they are logged)

feed
    - Builds the RSS feed from the cache
    - Exit 1 when the cache is missing or has no posts

run [--kwargs k=v ...]
    - Scrape + feed through runner.run_module_once(...) (one activity record)

serve
    - Starts the APScheduler loop via service.scheduler.start()
    - Stops cleanly on SIGINT/SIGTERM

list-sources
    - Prints the alder blog roster

validate-config
    - Loads/validates the service config and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.alder_blogs.lib.config import ConfigError as SettingsError
from modules.alder_blogs.lib.config import Settings
from modules.alder_blogs.lib.engine import run_once as run_aggregation_once
from modules.alder_blogs.lib.feed import FeedInputError, write_feed
from modules.alder_blogs.lib.sources import load_sources
from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")

MODULE = "modules.alder_blogs"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except json.JSONDecodeError:
            out[k] = v
    return out


def _settings_kwargs(args: argparse.Namespace) -> dict[str, Any]:
    kw: dict[str, Any] = {}
    for name in ("cache_path", "feed_path", "sources_path", "max_pages"):
        val = getattr(args, name, None)
        if val is not None:
            kw[name] = val
    return kw


def _print_table(rows: Iterable[tuple[str, ...]], headers: tuple[str, ...]) -> None:
    """Very simple fixed-width table printer."""
    rows = list(rows)
    widths = [max(len(h), *(len(r[i]) for r in rows)) if rows else len(h) for i, h in enumerate(headers)]
    sep = "+-" + "-+-".join("-" * w for w in widths) + "-+"
    print(sep)
    print("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    print(sep)
    for r in rows:
        print("| " + " | ".join(c.ljust(w) for c, w in zip(r, widths)) + " |")
    print(sep)


def _report_failure(where: str, e: BaseException, started: float) -> None:
    L.write_error_log({
        "ts": _now_iso(),
        "where": where,
        "error": repr(e),
        "duration_ms": int((time.monotonic() - started) * 1000),
    })


# ------------------------------ Subcommands ----------------------------------
def cmd_scrape(args: argparse.Namespace) -> int:
    started = time.monotonic()
    try:
        settings = Settings.from_env_and_kwargs(_settings_kwargs(args))
        summary = run_aggregation_once(settings)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except SettingsError as e:
        print(f"ERROR: invalid settings: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        LOG.exception("Fatal error during scrape")
        print(f"FAILURE: {e}", file=sys.stderr)
        _report_failure("cli.scrape", e, started)
        return EXIT_FAILURE

    if summary.written:
        print(f"Found {summary.new_posts} new posts; cache holds {summary.total_posts}.")
    else:
        print("No new posts found. Cache unchanged.")
    if summary.errors:
        print(f"{len(summary.errors)} blog(s) reported errors; see error log.")
    return EXIT_OK


def cmd_feed(args: argparse.Namespace) -> int:
    started = time.monotonic()
    try:
        settings = Settings.from_env_and_kwargs(_settings_kwargs(args))
        count = write_feed(
            settings.cache_path,
            settings.feed_path,
            title=settings.feed_title,
            link=settings.feed_link,
            description=settings.feed_description,
        )
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except FeedInputError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        LOG.exception("Fatal error during feed generation")
        print(f"FAILURE: {e}", file=sys.stderr)
        _report_failure("cli.feed", e, started)
        return EXIT_FAILURE

    print(f"RSS feed written to {settings.feed_path} ({count} items)")
    return EXIT_OK


def cmd_run(args: argparse.Namespace) -> int:
    started = time.monotonic()
    kwargs = {**_settings_kwargs(args), **_parse_kv_pairs(args.kwargs or [])}
    LOG.debug("Run module %s with kwargs=%s", MODULE, kwargs)

    try:
        meta, run_id = _runner.run_module_once(MODULE, kwargs=kwargs, trigger_type="adhoc")
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except FeedInputError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        _report_failure("cli.run", e, started)
        return EXIT_FAILURE

    print(f"DONE [{run_id}]: {(meta or {}).get('message', 'OK')}")
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler until a termination signal is received.
    """
    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})
    stop_event = threading.Event()

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        controller = _scheduler.start(config_path=args.config)
    except Exception as e:
        LOG.exception("Fatal error starting scheduler: %s", e)
        return EXIT_FAILURE

    try:
        while not stop_event.is_set():
            stop_event.wait(0.3)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    finally:
        controller.stop()
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
    return EXIT_OK


def cmd_list_sources(args: argparse.Namespace) -> int:
    try:
        sources = load_sources(getattr(args, "sources_path", None) or os.getenv("SOURCES_PATH"))
    except SettingsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE
    _print_table(
        ((str(s.district), s.name, s.blog_url) for s in sources),
        headers=("DISTRICT", "NAME", "BLOG"),
    )
    return EXIT_OK


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        tz = _scheduler.resolve_timezone(cfg)
        for job in cfg["jobs"]:
            _scheduler.make_job_spec(job, tz=tz)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except (_config_schema.ConfigError, ValueError) as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return EXIT_FAILURE
    print("OK: configuration is valid.")
    return EXIT_OK


# ------------------------------- Argparse ------------------------------------
def _add_path_args(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--cache-path",
        dest="cache_path",
        help="Posts cache JSON (default: POSTS_CACHE_PATH or data/posts.json).",
    )
    sp.add_argument("--feed-path", dest="feed_path", help="RSS output (default: FEED_PATH or public/feed.xml).")
    sp.add_argument("--sources-path", dest="sources_path", help="Roster JSON override (default: built-in roster).")
    sp.add_argument("--max-pages", dest="max_pages", type=int, help="Per-blog page ceiling (default: unbounded).")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="alder-blogs",
        description="Madison alder blog aggregator",
    )
    p.add_argument(
        "--config",
        help="Path to service config file (fallbacks to CONFIG_PATH env).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("scrape", help="Fetch new posts from every alder blog into the cache.")
    _add_path_args(sp)
    sp.set_defaults(func=cmd_scrape)

    sp = sub.add_parser("feed", help="Generate the RSS feed from the cache.")
    _add_path_args(sp)
    sp.set_defaults(func=cmd_feed)

    sp = sub.add_parser("run", help="Scrape then generate the feed (one logged module run).")
    _add_path_args(sp)
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Extra keyword arguments for the module (JSON values supported).",
    )
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("serve", help="Run the scheduler loop.")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("list-sources", help="Print the alder blog roster.")
    sp.add_argument("--sources-path", dest="sources_path", help="Roster JSON override.")
    sp.set_defaults(func=cmd_list_sources)

    sp = sub.add_parser("validate-config", help="Verify service configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
