from __future__ import annotations

import logging
from typing import Callable

from spuff_core.config import AgentConfig
from spuff_agent import __version__
from spuff_agent.devtools import DevtoolsManager
from spuff_agent.services.activity_service import ActivityService
from spuff_agent.services.auth_service import AuthService
from spuff_agent.services.devtools_service import DevtoolsService
from spuff_agent.services.docker_service import DockerService
from spuff_agent.services.exec_service import ExecService
from spuff_agent.services.log_service import LogService
from spuff_agent.services.metrics_service import MetricsService, collect_metrics
from spuff_agent.services.system_service import ActivityClock, SystemService
from spuff_agent.services.ticker_service import TickerService
from spuff_agent.services.volume_service import VolumeService
from spuff_agent.store import ExecLogStore


LOGGER = logging.getLogger("spuff_agent")


class AgentState:
    """Process-wide state shared by every request handler and background worker.

    Each mutable piece keeps its own lock inside the owning service so a slow
    reader of one never blocks writers of another.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        shell_runner: Callable[[str], str] | None = None,
        metrics_collector: Callable[[], object] = collect_metrics,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or LOGGER
        self.username = config.username
        paths = config.paths

        self.clock = ActivityClock()
        self.auth_service = AuthService(auth_token=config.auth_token, logger=self.logger.getChild("auth"))
        self.exec_log = ExecLogStore(log_file=paths.exec_log_file)
        self.activity_service = ActivityService(exec_log=self.exec_log, logger=self.logger.getChild("activity"))
        self.exec_service = ExecService(
            activity=self.activity_service,
            logger=self.logger.getChild("exec"),
            shell=config.shell,
        )
        self.log_service = LogService(
            allowed_log_dir=paths.allowed_log_dir,
            default_log_file=paths.default_log_file,
            logger=self.logger.getChild("logs"),
        )
        self.metrics_service = MetricsService(logger=self.logger.getChild("metrics"), collector=metrics_collector)
        self.system_service = SystemService(
            clock=self.clock,
            bootstrap_status_file=paths.bootstrap_status_file,
            cloud_init_result_file=paths.cloud_init_result_file,
            boot_finished_file=paths.boot_finished_file,
            agent_version=__version__,
            logger=self.logger.getChild("system"),
        )
        self.devtools_manager = DevtoolsManager(
            username=config.username,
            logger=self.logger.getChild("devtools"),
            shell_runner=shell_runner,
            shell=config.shell,
        )
        self.devtools_service = DevtoolsService(manager=self.devtools_manager, activity=self.activity_service)
        self.docker_service = DockerService(logger=self.logger.getChild("docker"))
        self.volume_service = VolumeService(mounts_file=paths.mounts_file, logger=self.logger.getChild("volumes"))
        self.ticker_service = TickerService(
            refresh_metrics=self.metrics_service.refresh_quietly,
            idle_seconds=self.clock.idle_seconds,
            heartbeat_file=paths.heartbeat_file,
            logger=self.logger.getChild("ticker"),
        )

    def update_activity(self) -> None:
        self.clock.update_activity()

    def idle_seconds(self) -> int:
        return self.clock.idle_seconds()

    def uptime_seconds(self) -> int:
        return self.clock.uptime_seconds()

    def record_activity(self, event: str, details: str | None = None) -> None:
        self.activity_service.record(event, details)

    def start_background_tasks(self) -> None:
        self.metrics_service.refresh_quietly()
        self.ticker_service.start()

    def stop_background_tasks(self) -> None:
        self.ticker_service.stop()
