# service/runner.py
from __future__ import annotations

import importlib
import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from service import logging_utils

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _maybe_bool(v: str) -> Any:
    low = v.strip().lower()
    if low in ("true", "t", "yes", "y"):
        return True
    if low in ("false", "f", "no", "n"):
        return False
    return v


def _maybe_number(v: Any) -> Any:
    if not isinstance(v, str):
        return v
    s = v.strip()
    if s and (s.isdigit() or (s.startswith("-") and s[1:].isdigit())):
        return int(s)
    try:
        return float(s)
    except ValueError:
        return v


def normalize_kwargs(kwargs: dict[str, Any] | None) -> dict[str, Any]:
    """
    Normalize job kwargs right before module.run(**kwargs):

      - String values that look like JSON objects/arrays are parsed.
      - Otherwise common bool / number string forms are coerced.
      - Path-like keys (*_path) are kept verbatim.
      - Non-strings are left unchanged.
    """
    if not kwargs:
        return {}

    normalized: dict[str, Any] = {}
    for k, v in kwargs.items():
        if not isinstance(v, str) or str(k).endswith("_path"):
            normalized[k] = v
            continue
        s = v.strip()
        if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
            try:
                normalized[k] = json.loads(s)
                continue
            except json.JSONDecodeError:
                pass
        normalized[k] = _maybe_number(_maybe_bool(s))
    return normalized


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    """Import module and return its `run` callable."""
    mod = importlib.import_module(module_path)
    if not hasattr(mod, "run") or not callable(mod.run):
        raise AttributeError(f"Module {module_path!r} does not define a callable `run(**kwargs)`.")
    return mod.run  # type: ignore[no-any-return]


def _emit_activity(record: dict[str, Any]) -> None:
    try:
        logging_utils.write_activity_log(record)
    except (OSError, TypeError, ValueError) as e:
        log.warning("logging_utils.write_activity_log failed: %s", e)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def run_module_once(
    module: str,
    kwargs: dict[str, Any] | None = None,
    trigger_type: str = "adhoc",
    job_context: dict[str, Any] | None = None,
) -> tuple[Any, str]:
    """
    Execute a module's run(**kwargs) once and record one activity line.

    Returns:
        (module_result, run_id)
    Raises:
        Propagates exceptions from module execution (caller/CLI decides exit code).
    """
    run_id = uuid.uuid4().hex
    context: dict[str, Any] = {
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "started_at": now_iso(),
    }
    if job_context:
        context.update({k: v for k, v in job_context.items() if k not in context})

    kw = normalize_kwargs(kwargs)
    run_callable = _resolve_callable(module)

    value: Any = None
    exc: Exception | None = None
    t0 = datetime.now()
    try:
        value = run_callable(**kw)
    except Exception as e:
        exc = e
    duration_ms = int((datetime.now() - t0).total_seconds() * 1000)

    meta = value if isinstance(value, dict) else {}
    _emit_activity({
        "ts": now_iso(),
        "event": "module_run",
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": exc is None,
        "message": str(exc) if exc else meta.get("message", "OK"),
        "exception_type": type(exc).__name__ if exc else None,
        "duration_ms": duration_ms,
        "context": context,
        "kwargs": kw,
        "meta": meta,
    })

    if exc:
        raise exc
    return value, run_id
