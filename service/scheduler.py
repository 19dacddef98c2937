# service/scheduler.py
from __future__ import annotations

import logging
import threading
import time as _time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

# One aggregation at a time: a run that is still going swallows the next fire.
JOB_DEFAULTS = {"coalesce": True, "max_instances": 1}


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True)
class JobSpec:
    id: str
    trigger: Any  # apscheduler BaseTrigger
    module: str
    kwargs: dict[str, Any]
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small facade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # In-flight runs finish; the cache write happens only at the end of a run.
            self._scheduler.shutdown(wait=True)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """Block until stopped (or timeout). True if stopped before timeout."""
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build a BackgroundScheduler, add jobs, and start.

    APScheduler 3.x prefers a pytz scheduler timezone; individual triggers may
    carry a zoneinfo timezone of their own.
    """
    cfg = config_schema.load_config(config_path)
    config_schema.validate(cfg)
    tz = resolve_timezone(cfg)

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=dict(JOB_DEFAULTS),
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg["jobs"]:
        _add_job(scheduler, make_job_spec(raw, tz=tz))

    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def make_job_spec(raw: dict[str, Any], tz: Any = None) -> JobSpec:
    """Convert a validated config job dict into a JobSpec with a built trigger."""
    module = _require(raw, "module")
    return JobSpec(
        id=str(raw.get("id") or raw.get("name") or module),
        trigger=build_trigger(raw["trigger"], tz),
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        max_instances=_int_or(raw.get("max_instances"), JOB_DEFAULTS["max_instances"]) or 1,
        coalesce=bool(raw.get("coalesce", JOB_DEFAULTS["coalesce"])),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


def build_trigger(trig_def: dict[str, Any], tz: Any = None) -> Any:
    """
    Build an APScheduler trigger from a dict.

    Supported shapes:
      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?, jitter?, timezone?}}
      {"cron":     "0 * * * *"}          # crontab, scheduler tz
      {"date":     {"run_at": ISO|epoch, "timezone"?: "..."}} or ISO|epoch
      {"daily_time": {"time": "HH:MM[:SS]" | [...], "day_of_week"?, "timezone"?}}
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    default_tz = _tz(tz)
    present = [k for k in ("interval", "cron", "date", "daily_time") if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron','date','daily_time'} must be provided")
    kind = present[0]
    spec = trig_def[kind]

    if kind == "interval":
        if not isinstance(spec, dict):
            raise ValueError("interval must be an object with time fields")
        units = {u: int(spec.get(u) or 0) for u in ("weeks", "days", "hours", "minutes", "seconds")}
        if any(v < 0 for v in units.values()) or sum(units.values()) == 0:
            raise ValueError("interval must be greater than 0 (non-negative fields, at least one nonzero)")
        kwargs: dict[str, Any] = {k: v for k, v in units.items() if v}
        for extra in ("jitter", "start_date", "end_date"):
            if spec.get(extra):
                kwargs[extra] = spec[extra]
        return IntervalTrigger(timezone=_tz(spec.get("timezone")) or default_tz, **kwargs)

    if kind == "cron":
        if isinstance(spec, str):
            if len(spec.split()) not in (5, 6):
                raise ValueError(f"cron string must have 5 or 6 fields: {spec!r}")
            return CronTrigger.from_crontab(spec, timezone=default_tz)
        if not isinstance(spec, dict):
            raise ValueError("cron must be a crontab string or an object")
        return CronTrigger(
            second=spec.get("second", 0),
            minute=spec.get("minute", 0),
            hour=spec.get("hour"),
            day=spec.get("day"),
            day_of_week=spec.get("day_of_week"),
            month=spec.get("month"),
            jitter=spec.get("jitter"),
            timezone=_tz(spec.get("timezone")) or default_tz,
        )

    if kind == "date":
        run_at = spec.get("run_at") if isinstance(spec, dict) else spec
        tzinfo = (_tz(spec.get("timezone")) if isinstance(spec, dict) else None) or default_tz or timezone.utc
        if isinstance(run_at, (int, float)):
            dt = datetime.fromtimestamp(run_at, tz=tzinfo)
        else:
            try:
                dt = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
            except ValueError as e:
                raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=tzinfo)
        return DateTrigger(run_date=dt, timezone=dt.tzinfo)

    # daily_time
    if isinstance(spec, str):
        spec = {"time": spec}
    if not isinstance(spec, dict):
        raise ValueError("daily_time must be a 'HH:MM' string or an object")
    times = spec.get("time")
    if isinstance(times, str):
        times = [times]
    if not times:
        raise ValueError("daily_time requires 'time'")
    tzinfo = _tz(spec.get("timezone")) or default_tz
    triggers = [
        CronTrigger(second=s, minute=m, hour=h, day_of_week=spec.get("day_of_week"), timezone=tzinfo)
        for h, m, s in sorted({_parse_hms(str(t)) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


# ---- Helpers ----------------------------------------------------------------


def _tz(z: Any) -> Any:
    if not z:
        return None
    if isinstance(z, _dt_tzinfo):
        return z
    return ZoneInfo(str(z))


def _parse_hms(s: str) -> tuple[int, int, int]:
    parts = s.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {s!r}")
    try:
        hh, mm = int(parts[0]), int(parts[1])
        ss = int(parts[2]) if len(parts) == 3 else 0
    except ValueError as err:
        raise ValueError(f"daily_time.time must contain integers: {s!r}") from err
    time(hh, mm, ss)  # validates ranges
    return hh, mm, ss


def resolve_timezone(cfg: dict[str, Any]) -> Any:
    tz_name = cfg.get("timezone") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register a wrapper that runs the module via runner.run_module_once(),
    logs start/finish and writes one scheduler activity record per fire.
    """

    def _job_wrapper() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            runner.run_module_once(
                spec.module,
                kwargs=spec.kwargs,
                trigger_type="scheduled",
                job_context={"job_id": spec.id, "now_iso": datetime.now(timezone.utc).isoformat()},
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return
        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", spec.id, duration)
        _write_activity(spec, status="ok", duration_s=duration)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )
    job = scheduler.get_job(spec.id)
    LOG.info(
        "Registered job[%s] (module=%s, summary=%r) next_run_time=%s",
        spec.id,
        spec.module,
        spec.summary,
        getattr(job, "next_run_time", None),
    )


def _write_activity(spec: JobSpec, status: str, duration_s: float) -> None:
    try:
        write_activity_log({
            "source": "scheduler",
            "event": "job_run",
            "job_id": spec.id,
            "module": spec.module,
            "status": status,
            "duration_ms": int(duration_s * 1000),
            "summary": spec.summary,
        })
    except OSError:
        LOG.debug("write_activity_log failed for job[%s]", spec.id, exc_info=True)


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    """Return int(v) or default if v is None/invalid (lenient for config)."""
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default
