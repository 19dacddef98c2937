# service/config_schema.py
"""
Service configuration for `serve` / `run`.

Shape (JSON or YAML):

    {
      "timezone": "America/Chicago",
      "jobs": [
        {
          "id": "alder-blogs-hourly",
          "module": "modules.alder_blogs",
          "trigger": {"cron": "0 * * * *"},
          "kwargs": {"cache_path": "data/posts.json", "feed_path": "public/feed.xml"},
          "summary": "Scrape alder blogs and rebuild the feed"
        }
      ]
    }
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config is invalid."""


_TRIGGER_FIELDS = ("cron", "interval", "date", "daily_time")
_DAILY_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_INTERVAL_FIELDS = {"weeks", "days", "hours", "minutes", "seconds", "jitter", "timezone", "start_date", "end_date"}


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Internal default (empty jobs list)

    Returns:
        dict with at least {"jobs": [...], "timezone": str}.
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        cfg: dict[str, Any] = {"jobs": []}
    else:
        cfg = _read_any(resolved_path)
    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """
    Validate the configuration. Raise ConfigError on any problem.
    No prints, no sys.exit().
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    jobs = cfg.get("jobs")
    if jobs is None:
        raise ConfigError("Missing required top-level 'jobs' list.")
    if not isinstance(jobs, list):
        raise ConfigError("'jobs' must be a list.")

    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")

    seen_ids: set[str] = set()
    for idx, job in enumerate(jobs):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")

        module = job.get("module")
        if not isinstance(module, str) or not module.strip():
            raise ConfigError(f"Job {idx}: 'module' is required and must be a non-empty string.")

        job_id = _derive_job_id(job, idx)
        if job_id in seen_ids:
            raise ConfigError(f"Duplicate job id '{job_id}'.")
        seen_ids.add(job_id)

        trigger = job.get("trigger")
        if not isinstance(trigger, dict):
            raise ConfigError(f"Job '{job_id}': 'trigger' is required and must be an object.")
        present = [k for k in _TRIGGER_FIELDS if trigger.get(k) is not None]
        if len(present) != 1:
            raise ConfigError(f"Job '{job_id}': exactly one trigger required among {', '.join(_TRIGGER_FIELDS)}.")
        _validate_trigger(present[0], trigger[present[0]], job_id)

        if "kwargs" in job and not isinstance(job["kwargs"], dict):
            raise ConfigError(f"Job '{job_id}': 'kwargs' must be a dict if provided.")

        if "coalesce" in job:
            _to_bool(job["coalesce"], field="coalesce", job_id=job_id)
        for name, allow_zero in (("max_instances", False), ("misfire_grace_time", True)):
            if name in job:
                _to_int(job[name], field=name, job_id=job_id, allow_zero=allow_zero)

        for opt_str in ("summary", "description"):
            if opt_str in job and not isinstance(job[opt_str], str):
                raise ConfigError(f"Job '{job_id}': '{opt_str}' must be a string if provided.")


# ---- Internal helpers --------------------------------------------------------


def _validate_trigger(kind: str, value: Any, job_id: str) -> None:
    if kind == "cron":
        if isinstance(value, str):
            if len(value.split()) not in (5, 6):
                raise ConfigError(f"Job '{job_id}': cron string must have 5 or 6 fields.")
        elif not isinstance(value, dict):
            raise ConfigError(f"Job '{job_id}': cron must be a crontab string or an object.")
    elif kind == "interval":
        if not isinstance(value, dict):
            raise ConfigError(f"Job '{job_id}': interval must be an object of time kwargs.")
        unknown = set(value) - _INTERVAL_FIELDS
        if unknown:
            raise ConfigError(f"Job '{job_id}': interval has unknown field(s): {sorted(unknown)}")
        for k in ("weeks", "days", "hours", "minutes", "seconds"):
            if k in value:
                _to_int(value[k], field=f"interval.{k}", job_id=job_id, allow_zero=True)
    elif kind == "date":
        run_at = value.get("run_at") if isinstance(value, dict) else value
        if not isinstance(run_at, (str, int, float)) or (isinstance(run_at, str) and not run_at.strip()):
            raise ConfigError(f"Job '{job_id}': date must be an ISO-8601 string or epoch seconds.")
    elif kind == "daily_time":
        times = value.get("time") if isinstance(value, dict) else value
        if isinstance(times, str):
            times = [times]
        if not isinstance(times, list) or not times:
            raise ConfigError(f"Job '{job_id}': daily_time needs 'HH:MM' string(s).")
        for t in times:
            _validate_daily_time(t, job_id)


def _validate_daily_time(dt: Any, job_id: str) -> None:
    if not isinstance(dt, str):
        raise ConfigError(f"Job '{job_id}': 'daily_time' must be a string like 'HH:MM'.")
    m = _DAILY_TIME_RE.match(dt.strip())
    if not m:
        raise ConfigError(f"Job '{job_id}': 'daily_time' must match HH:MM (24h).")
    hour, minute = int(m.group(1)), int(m.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigError(f"Job '{job_id}': 'daily_time' hour/minute out of range (00:00..23:59).")


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    if not isinstance(cfg.get("jobs"), list):
        cfg["jobs"] = []

    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    normalized: list[Any] = []
    for idx, job in enumerate(cfg["jobs"]):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")
        job_copy = dict(job)
        job_copy["id"] = _derive_job_id(job_copy, idx)
        if "coalesce" in job_copy:
            job_copy["coalesce"] = _to_bool(job_copy["coalesce"], field="coalesce", job_id=job_copy["id"])
        normalized.append(job_copy)
    cfg["jobs"] = normalized


def _derive_job_id(job: dict[str, Any], idx: int) -> str:
    # id | name | module -> id
    for key in ("id", "name", "module"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


def _to_bool(value: Any, *, field: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"1", "true", "yes", "on"}:
            return True
        if v in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Job '{job_id}': '{field}' must be a boolean (or boolean-like string).")


def _to_int(value: Any, *, field: str, job_id: str, allow_zero: bool) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise ConfigError(f"Job '{job_id}': '{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _read_any(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    lower = path.lower()
    if lower.endswith((".yml", ".yaml")):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        data = {} if data is None else data
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be a mapping/object.")
    return data
