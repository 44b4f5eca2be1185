from __future__ import annotations

from collections import deque
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any

from spuff_core.shared import escape_control_chars


EXEC_LOG_FIELD_COUNT = 5


def format_exec_log_line(timestamp: datetime, event: str, details: str | None) -> str:
    return f"{timestamp.isoformat()}\t{escape_control_chars(event)}\t{details or ''}\n"


def parse_exec_log_line(line: str) -> dict[str, Any] | None:
    stripped = line.rstrip("\n").rstrip("\r")
    if not stripped:
        return None
    parts = stripped.split("\t", EXEC_LOG_FIELD_COUNT - 1)
    entry: dict[str, Any] = {
        "timestamp": parts[0],
        "event": parts[1] if len(parts) > 1 else "",
        "details": parts[2] if len(parts) > 2 else "",
    }
    if len(parts) > 3:
        entry["stdout"] = parts[3]
    if len(parts) > 4:
        entry["stderr"] = parts[4]
    return entry


class ExecLogStore:
    """Append-only tab-separated audit trail of proxied command executions."""

    def __init__(self, *, log_file: Path, lock: Lock | None = None) -> None:
        self.log_file = Path(log_file)
        self._lock = lock or Lock()

    def append(self, timestamp: datetime, event: str, details: str | None) -> None:
        line = format_exec_log_line(timestamp, event, details)
        with self._lock:
            with self.log_file.open("a", encoding="utf-8") as fp:
                fp.write(line)

    def tail(self, lines: int) -> list[dict[str, Any]]:
        if lines <= 0:
            return []
        ring: deque[str] = deque(maxlen=lines)
        try:
            with self.log_file.open("r", encoding="utf-8", errors="replace") as fp:
                for raw_line in fp:
                    if raw_line.strip():
                        ring.append(raw_line)
        except FileNotFoundError:
            return []
        entries: list[dict[str, Any]] = []
        for raw_line in ring:
            parsed = parse_exec_log_line(raw_line)
            if parsed is not None:
                entries.append(parsed)
        return entries
