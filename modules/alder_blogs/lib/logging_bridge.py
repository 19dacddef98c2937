from __future__ import annotations

import copy
import logging
from typing import Any

# Prefer the service sink; default to stdlib logging when it is not importable.
# No prints; this module should be silent on import.
_logging_backend = None
try:
    from service import logging_utils as _svc_logging  # type: ignore

    _logging_backend = _svc_logging
except ImportError:
    _logging_backend = None

# Keys that should be redacted from structured logs
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "auth",
    "bearer",
    "cookie",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact obvious secret-like fields at top level.
    The service sink does a deep pass of its own.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the service JSONL sink if available.
    Falls back to stdlib logging as structured info.
    """
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_activity_log(payload)
            return
        except (OSError, TypeError, ValueError):
            logging.getLogger("alder_blogs.activity").debug("activity sink failed", exc_info=True)
    logging.getLogger("alder_blogs.activity").info(payload)


def warning(record: dict[str, Any]) -> None:
    """
    Warnings are activity records tagged with level=warning, mirrored to stdlib logging.
    """
    payload = {**record, "level": "warning"}
    logging.getLogger("alder_blogs.warning").warning(_redact_record(payload))
    activity(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the service JSONL sink if available.
    Falls back to stdlib logging as structured error.
    """
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_error_log(payload)
            return
        except (OSError, TypeError, ValueError):
            logging.getLogger("alder_blogs.error").debug("error sink failed", exc_info=True)
    logging.getLogger("alder_blogs.error").error(payload)
