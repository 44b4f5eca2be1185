from __future__ import annotations

import logging
import os
import platform
import socket
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any

import psutil


TOP_PROCESS_LIMIT = 10


@dataclass(frozen=True)
class LoadAverage:
    one: float = 0.0
    five: float = 0.0
    fifteen: float = 0.0


@dataclass(frozen=True)
class MetricsSnapshot:
    cpu_usage: float = 0.0
    memory_total: int = 0
    memory_used: int = 0
    memory_percent: float = 0.0
    swap_total: int = 0
    swap_used: int = 0
    disk_total: int = 0
    disk_used: int = 0
    disk_percent: float = 0.0
    load_avg: LoadAverage = field(default_factory=LoadAverage)
    hostname: str = ""
    os: str = ""
    kernel: str = ""
    cpus: int = 0

    def payload(self) -> dict[str, Any]:
        return asdict(self)


def _os_name() -> str:
    try:
        release = platform.freedesktop_os_release()
    except OSError:
        return platform.system()
    return str(release.get("PRETTY_NAME") or release.get("NAME") or platform.system())


def collect_metrics(*, disk_path: str = "/") -> MetricsSnapshot:
    memory = psutil.virtual_memory()
    swap = psutil.swap_memory()
    disk = psutil.disk_usage(disk_path)
    try:
        one, five, fifteen = os.getloadavg()
    except OSError:
        one = five = fifteen = 0.0
    return MetricsSnapshot(
        cpu_usage=float(psutil.cpu_percent(interval=None)),
        memory_total=int(memory.total),
        memory_used=int(memory.used),
        memory_percent=float(memory.percent),
        swap_total=int(swap.total),
        swap_used=int(swap.used),
        disk_total=int(disk.total),
        disk_used=int(disk.used),
        disk_percent=float(disk.percent),
        load_avg=LoadAverage(one=float(one), five=float(five), fifteen=float(fifteen)),
        hostname=socket.gethostname(),
        os=_os_name(),
        kernel=platform.release(),
        cpus=int(psutil.cpu_count() or 0),
    )


def top_processes(limit: int = TOP_PROCESS_LIMIT) -> list[dict[str, Any]]:
    processes: list[dict[str, Any]] = []
    for proc in psutil.process_iter(attrs=["pid", "name", "cpu_percent", "memory_info"]):
        info = proc.info
        memory_info = info.get("memory_info")
        processes.append(
            {
                "pid": int(info.get("pid") or 0),
                "name": str(info.get("name") or ""),
                "cpu_usage": float(info.get("cpu_percent") or 0.0),
                "memory": int(memory_info.rss) if memory_info is not None else 0,
            }
        )
    processes.sort(key=lambda item: item["cpu_usage"], reverse=True)
    return processes[: max(0, int(limit))]


class MetricsService:
    """Holds the last collected snapshot; the metrics ticker swaps in fresh ones."""

    def __init__(self, *, logger: logging.Logger, collector=collect_metrics) -> None:
        self._logger = logger
        self._collector = collector
        self._lock = Lock()
        self._snapshot = MetricsSnapshot()

    def refresh(self) -> MetricsSnapshot:
        snapshot = self._collector()
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def refresh_quietly(self) -> None:
        try:
            self.refresh()
        except (OSError, RuntimeError, psutil.Error) as exc:
            self._logger.warning(
                "Failed to collect metrics: %s",
                exc,
                extra={"component": "metrics", "operation": "refresh", "result": "error", "error_class": type(exc).__name__},
            )

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return self._snapshot

    def metrics_payload(self) -> dict[str, Any]:
        return self.snapshot().payload()

    def processes_payload(self, limit: int = TOP_PROCESS_LIMIT) -> list[dict[str, Any]]:
        return top_processes(limit)
