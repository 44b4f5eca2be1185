from __future__ import annotations

import logging
from pathlib import Path
from threading import Event, Thread
from typing import Callable


METRICS_INTERVAL_SECONDS = 10.0
HEARTBEAT_INTERVAL_SECONDS = 30.0


def write_heartbeat_file(path: Path, idle_seconds: int) -> None:
    Path(path).write_text(str(int(idle_seconds)), encoding="utf-8")


class TickerService:
    """Background metric refresh and heartbeat file writer."""

    def __init__(
        self,
        *,
        refresh_metrics: Callable[[], None],
        idle_seconds: Callable[[], int],
        heartbeat_file: Path,
        logger: logging.Logger,
        metrics_interval_seconds: float = METRICS_INTERVAL_SECONDS,
        heartbeat_interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self._refresh_metrics = refresh_metrics
        self._idle_seconds = idle_seconds
        self._heartbeat_file = Path(heartbeat_file)
        self._logger = logger
        self._metrics_interval_seconds = float(metrics_interval_seconds)
        self._heartbeat_interval_seconds = float(heartbeat_interval_seconds)
        self._stop = Event()
        self._threads: list[Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        self._threads = [
            Thread(target=self._loop, args=(self._metrics_interval_seconds, self.metrics_tick), daemon=True, name="spuff-metrics-ticker"),
            Thread(target=self._loop, args=(self._heartbeat_interval_seconds, self.heartbeat_tick), daemon=True, name="spuff-heartbeat-ticker"),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def _loop(self, interval: float, tick: Callable[[], None]) -> None:
        while True:
            try:
                tick()
            except Exception:
                self._logger.exception("Background tick failed", extra={"component": "ticker", "result": "error"})
            if self._stop.wait(interval):
                return

    def metrics_tick(self) -> None:
        self._refresh_metrics()

    def heartbeat_tick(self) -> None:
        idle = self._idle_seconds()
        try:
            write_heartbeat_file(self._heartbeat_file, idle)
        except OSError as exc:
            self._logger.debug(
                "Failed to write heartbeat file %s: %s",
                self._heartbeat_file,
                exc,
                extra={"component": "ticker", "operation": "heartbeat", "result": "error"},
            )
