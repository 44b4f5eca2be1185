from __future__ import annotations

import json
import logging
import socket
from pathlib import Path
from threading import Lock
from typing import Any, Callable

from spuff_core.errors import CommandError
from spuff_core.shared import iso_now, utc_now
from spuff_agent.integrations import run_command


CLOUD_INIT_TIMEOUT_SECONDS = 30.0


class ActivityClock:
    """Process start time plus the guarded last-activity instant used for idle detection."""

    def __init__(self, *, clock: Callable[[], Any] = utc_now) -> None:
        self._clock = clock
        self.start_time = clock()
        self._last_activity = self.start_time
        self._lock = Lock()

    def update_activity(self) -> None:
        now = self._clock()
        with self._lock:
            self._last_activity = now

    def last_activity(self):
        with self._lock:
            return self._last_activity

    def idle_seconds(self) -> int:
        return max(0, int((self._clock() - self.last_activity()).total_seconds()))

    def uptime_seconds(self) -> int:
        return max(0, int((self._clock() - self.start_time).total_seconds()))


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def cloud_init_result_done(text: str | None) -> bool:
    if not text:
        return False
    return '"status": "done"' in text or '"status":"done"' in text


def parse_cloud_init_status(output: str) -> tuple[str, bool, list[str]]:
    try:
        payload = json.loads(output)
    except (TypeError, ValueError):
        return "unknown", False, []
    if not isinstance(payload, dict):
        return "unknown", False, []
    status = payload.get("status")
    status = status if isinstance(status, str) else "unknown"
    raw_errors = payload.get("errors")
    errors = [item for item in raw_errors if isinstance(item, str)] if isinstance(raw_errors, list) else []
    return status, status == "done", errors


class SystemService:
    def __init__(
        self,
        *,
        clock: ActivityClock,
        bootstrap_status_file: Path,
        cloud_init_result_file: Path,
        boot_finished_file: Path,
        agent_version: str,
        logger: logging.Logger,
        command_runner: Callable[..., Any] = run_command,
    ) -> None:
        self._clock = clock
        self._bootstrap_status_file = Path(bootstrap_status_file)
        self._cloud_init_result_file = Path(cloud_init_result_file)
        self._boot_finished_file = Path(boot_finished_file)
        self._agent_version = agent_version
        self._logger = logger
        self._command_runner = command_runner

    def health_payload(self) -> dict[str, Any]:
        return {"status": "ok", "service": "spuff-agent", "version": self._agent_version}

    def status_payload(self) -> dict[str, Any]:
        bootstrap_text = _read_text(self._bootstrap_status_file)
        bootstrap_status = bootstrap_text.strip() if bootstrap_text is not None else "unknown"
        return {
            "uptime_seconds": self._clock.uptime_seconds(),
            "idle_seconds": self._clock.idle_seconds(),
            "hostname": socket.gethostname() or "unknown",
            "cloud_init_done": cloud_init_result_done(_read_text(self._cloud_init_result_file)),
            "bootstrap_status": bootstrap_status,
            "bootstrap_ready": bootstrap_status == "ready",
            "agent_version": self._agent_version,
        }

    def heartbeat_payload(self) -> dict[str, Any]:
        self._clock.update_activity()
        return {"status": "ok", "timestamp": iso_now()}

    def cloud_init_payload(self) -> dict[str, Any]:
        try:
            result = self._command_runner(
                ["cloud-init", "status", "--format=json"],
                check=False,
                timeout=CLOUD_INIT_TIMEOUT_SECONDS,
            )
        except CommandError as exc:
            self._logger.debug(
                "cloud-init status unavailable: %s",
                exc,
                extra={"component": "system", "operation": "cloud_init", "result": "unavailable"},
            )
            status, done, errors = "unavailable", False, []
        else:
            status, done, errors = parse_cloud_init_status(result.stdout)
        boot_finished = _read_text(self._boot_finished_file)
        return {
            "status": status,
            "done": done,
            "errors": errors,
            "boot_finished": boot_finished.strip() if boot_finished is not None else None,
        }
