from __future__ import annotations

import os
from typing import Any
from xml.sax.saxutils import escape as _xml_escape

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def esc_xml(s: Any) -> str:
    """
    Escape text for XML element content and attributes (& < > " ').
    """
    if s is None:
        return ""
    return _xml_escape(str(s), _XML_ENTITIES)


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def getenv_str(name: str, default: str | None = None) -> str | None:
    """
    Typed wrapper for environment access.
    """
    val = os.getenv(name)
    return val if val is not None else default


def int_or_default(value: Any, default: int) -> int:
    """
    Lenient integer parse for env/kwargs: anything non-numeric yields `default`.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default
