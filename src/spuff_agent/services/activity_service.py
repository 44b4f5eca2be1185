from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any

from spuff_core.shared import clamp_int, utc_now
from spuff_agent.store import ExecLogStore


MAX_ACTIVITY_LOG_ENTRIES = 100
DEFAULT_ACTIVITY_LIMIT = 20
DEFAULT_EXEC_LOG_LINES = 50
MAX_EXEC_LOG_LINES = 500
EXEC_EVENT_PREFIX = "exec"


@dataclass(frozen=True)
class ActivityEntry:
    timestamp: datetime
    event: str
    details: str | None = None

    def payload(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event": self.event,
            "details": self.details,
        }


class ActivityService:
    """Bounded in-memory activity ring with exec events spilled to the audit file."""

    def __init__(
        self,
        *,
        exec_log: ExecLogStore,
        logger: logging.Logger,
        capacity: int = MAX_ACTIVITY_LOG_ENTRIES,
    ) -> None:
        self._exec_log = exec_log
        self._logger = logger
        self._capacity = int(capacity)
        self._entries: deque[ActivityEntry] = deque(maxlen=self._capacity)
        self._lock = Lock()

    def record(self, event: str, details: str | None = None) -> ActivityEntry:
        with self._lock:
            entry = ActivityEntry(timestamp=utc_now(), event=str(event), details=details)
            self._entries.append(entry)
        if entry.event.startswith(EXEC_EVENT_PREFIX):
            self._spill_exec_entry(entry)
        return entry

    def _spill_exec_entry(self, entry: ActivityEntry) -> None:
        try:
            self._exec_log.append(entry.timestamp, entry.event, entry.details)
        except OSError as exc:
            self._logger.warning(
                "Failed to write exec log %s: %s",
                self._exec_log.log_file,
                exc,
                extra={"component": "activity", "operation": "exec_log_append", "result": "error"},
            )

    def recent(self, limit: Any = DEFAULT_ACTIVITY_LIMIT) -> list[ActivityEntry]:
        resolved = clamp_int(limit, default=DEFAULT_ACTIVITY_LIMIT, maximum=self._capacity)
        with self._lock:
            snapshot = list(self._entries)
        snapshot.reverse()
        return snapshot[:resolved]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def activity_payload(self, limit: Any = DEFAULT_ACTIVITY_LIMIT) -> dict[str, Any]:
        entries = [entry.payload() for entry in self.recent(limit)]
        return {"entries": entries, "count": len(entries)}

    def exec_log_payload(self, lines: Any = DEFAULT_EXEC_LOG_LINES) -> dict[str, Any]:
        resolved = clamp_int(lines, default=DEFAULT_EXEC_LOG_LINES, maximum=MAX_EXEC_LOG_LINES)
        try:
            entries = self._exec_log.tail(resolved)
        except OSError as exc:
            self._logger.warning(
                "Failed to read exec log %s: %s",
                self._exec_log.log_file,
                exc,
                extra={"component": "activity", "operation": "exec_log_read", "result": "error"},
            )
            entries = []
        return {"entries": entries, "count": len(entries)}
