from __future__ import annotations

import logging
from threading import Lock, Thread
from typing import Any, Callable

from spuff_core.errors import InstallInProgressError
from spuff_core.shared import utc_now
from spuff_agent.devtools.pipeline import build_pipeline, plan_stages, run_stages
from spuff_agent.devtools.steps import RECIPES, StepSkipped, probe_version
from spuff_agent.devtools.types import InstallConfig, InstallState, ToolStatus, catalog_entries
from spuff_agent.integrations import run_shell


class DevtoolsManager:
    """Owns the install state and drives the detached installation pipeline."""

    def __init__(
        self,
        *,
        username: str,
        logger: logging.Logger,
        shell_runner: Callable[[str], str] | None = None,
        shell: str = "sh",
    ) -> None:
        self.username = username
        self._logger = logger
        self._shell_runner = shell_runner or (lambda script: run_shell(script, shell=shell))
        self._state = InstallState()
        self._index = {tool.id: position for position, tool in enumerate(self._state.tools)}
        self._lock = Lock()
        self._worker: Thread | None = None

    def snapshot(self) -> InstallState:
        with self._lock:
            return self._state.copy()

    def state_payload(self) -> dict[str, Any]:
        return self.snapshot().payload()

    def install(self, config: InstallConfig) -> None:
        with self._lock:
            if self._state.started and not self._state.completed:
                raise InstallInProgressError("Installation already in progress")
            self._state.started = True
            self._state.completed = False
            self._state.started_at = utc_now()
            self._state.completed_at = None
            self._state.tools = catalog_entries()
            for tool in self._state.tools:
                if not config.is_enabled(tool.id):
                    tool.status = ToolStatus.skipped()
            worker = Thread(target=self._pipeline_worker, args=(config,), daemon=True, name="spuff-devtools-install")
            self._worker = worker
        self._logger.info(
            "Starting devtools installation for user %s",
            self.username,
            extra={"component": "devtools", "operation": "install", "result": "started"},
        )
        worker.start()

    def wait_until_complete(self, timeout: float | None = None) -> bool:
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return self.snapshot().completed

    def update_status(self, tool_id: str, status: ToolStatus, version: str | None = None) -> bool:
        """Apply a status transition; invalid transitions are logged and ignored."""
        with self._lock:
            position = self._index.get(tool_id)
            if position is None:
                return False
            tool = self._state.tools[position]
            if not tool.status.can_transition_to(status):
                self._logger.warning(
                    "Ignoring invalid status transition for %s: %s -> %s",
                    tool_id,
                    tool.status.kind.value,
                    status.kind.value,
                    extra={"component": "devtools", "operation": "update_status", "tool_id": tool_id},
                )
                return False
            tool.status = status
            if version is not None:
                tool.version = version
        return True

    def _pipeline_worker(self, config: InstallConfig) -> None:
        started = utc_now()
        try:
            stages = plan_stages(build_pipeline(config, lambda tool_id: self._run_tool(tool_id, config)))
            run_stages(stages)
        finally:
            with self._lock:
                for tool in self._state.tools:
                    if not tool.status.is_terminal:
                        tool.status = ToolStatus.failed("Installation step did not finish")
                self._state.completed = True
                self._state.completed_at = utc_now()
            duration_ms = int((utc_now() - started).total_seconds() * 1000)
            self._logger.info(
                "Devtools installation completed",
                extra={"component": "devtools", "operation": "install", "result": "completed", "duration_ms": duration_ms},
            )

    def _run_tool(self, tool_id: str, config: InstallConfig) -> None:
        try:
            recipe = RECIPES[tool_id](self.username, config)
        except StepSkipped as exc:
            self._logger.info(
                "Skipping %s: %s",
                tool_id,
                exc,
                extra={"component": "devtools", "operation": "install_step", "result": "skipped", "tool_id": tool_id},
            )
            self.update_status(tool_id, ToolStatus.skipped())
            return

        self.update_status(tool_id, ToolStatus.installing())
        self._logger.info(
            "Installing %s",
            tool_id,
            extra={"component": "devtools", "operation": "install_step", "result": "installing", "tool_id": tool_id},
        )
        try:
            for script in recipe.install_scripts:
                self._shell_runner(script)
        except Exception as exc:
            reason = str(exc).strip() or type(exc).__name__
            self._logger.warning(
                "Failed to install %s: %s",
                tool_id,
                reason,
                extra={
                    "component": "devtools",
                    "operation": "install_step",
                    "result": "failed",
                    "tool_id": tool_id,
                    "error_class": type(exc).__name__,
                },
            )
            self.update_status(tool_id, ToolStatus.failed(reason))
            return

        for script in recipe.optional_scripts:
            try:
                self._shell_runner(script)
            except Exception as exc:
                self._logger.debug("Optional step for %s failed: %s", tool_id, exc, extra={"tool_id": tool_id})

        version = probe_version(recipe, self._shell_runner)
        self.update_status(tool_id, ToolStatus.done(), version)
        self._logger.info(
            "%s installed (version=%s)",
            tool_id,
            version or "unknown",
            extra={"component": "devtools", "operation": "install_step", "result": "done", "tool_id": tool_id},
        )
