from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


PREVIEW_ELLIPSIS = "..."


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return utc_now().isoformat()


def clamp_int(value: Any, *, default: int, minimum: int = 0, maximum: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, min(parsed, maximum))


def truncate_preview(value: str, max_chars: int) -> str:
    text = str(value or "")
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + PREVIEW_ELLIPSIS


def escape_control_chars(value: str) -> str:
    """Escape tab, newline and carriage return so a value fits on one TSV field."""
    return str(value or "").replace("\t", "\\t").replace("\n", "\\n").replace("\r", "\\r")


def single_line_preview(value: str, max_chars: int) -> str:
    return escape_control_chars(truncate_preview(value, max_chars))


def first_line(value: str) -> str:
    for line in str(value or "").splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""
