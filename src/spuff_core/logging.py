from __future__ import annotations

import logging
import re
import sys
from typing import Any


LOG_LEVEL_CHOICES = ("debug", "info", "warning", "error")
_REDACT_PATTERN = re.compile(r"(?i)(authorization|token|authkey|password)=([^\s,;]+)")
_STRUCTURED_DEFAULTS: dict[str, Any] = {
    "request_id": "",
    "component": "",
    "operation": "",
    "result": "",
    "tool_id": "",
    "duration_ms": 0,
    "error_class": "",
}


class StructuredLogDefaultsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _STRUCTURED_DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        try:
            message = record.getMessage()
        except Exception:
            return True
        lowered = message.lower()
        if any(secret_key in lowered for secret_key in ("authorization", "token", "authkey", "password")):
            record.msg = _REDACT_PATTERN.sub(r"\1=[redacted]", message)
            record.args = ()
        return True


def normalize_log_level(value: Any, *, default: str = "info") -> str:
    candidate = str(value or "").strip().lower()
    if candidate == "warn":
        candidate = "warning"
    if candidate in LOG_LEVEL_CHOICES:
        return candidate
    return default


def configure_structured_logger(logger: logging.Logger, *, level: str) -> None:
    handler = logging.StreamHandler(sys.__stderr__)
    handler.addFilter(StructuredLogDefaultsFilter())
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: "
            "request_id=%(request_id)s component=%(component)s operation=%(operation)s "
            "result=%(result)s tool_id=%(tool_id)s duration_ms=%(duration_ms)s "
            "error_class=%(error_class)s %(message)s"
        )
    )
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, normalize_log_level(level).upper(), logging.INFO))
    logger.propagate = False


def uvicorn_log_level(agent_level: str) -> str:
    normalized = normalize_log_level(agent_level)
    if normalized == "debug":
        return "info"
    return normalized
