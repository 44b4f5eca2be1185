from __future__ import annotations

import logging
import subprocess
from typing import Any

from spuff_core.errors import ExecSpawnError, ExecTimeoutError
from spuff_core.shared import single_line_preview
from spuff_agent.integrations import run_shell_with_timeout
from spuff_agent.services.activity_service import ActivityService


DEFAULT_EXEC_TIMEOUT_SECONDS = 30
COMMAND_PREVIEW_MAX_CHARS = 80
OUTPUT_PREVIEW_MAX_CHARS = 500


def command_preview(command: str) -> str:
    return single_line_preview(command, COMMAND_PREVIEW_MAX_CHARS)


def exec_success_details(command: str, exit_code: int, duration_ms: int, stdout: str, stderr: str) -> str:
    return (
        f"cmd='{command_preview(command)}' exit={exit_code} duration={duration_ms}ms"
        f"\t{single_line_preview(stdout, OUTPUT_PREVIEW_MAX_CHARS)}"
        f"\t{single_line_preview(stderr, OUTPUT_PREVIEW_MAX_CHARS)}"
    )


class ExecService:
    """Shell execution proxy.

    Runs arbitrary commands as the agent user. The only access control is the
    token gate in front of the route.
    """

    def __init__(self, *, activity: ActivityService, logger: logging.Logger, shell: str = "sh") -> None:
        self._activity = activity
        self._logger = logger
        self._shell = shell

    def execute(self, command: str, timeout_secs: int | None = None) -> dict[str, Any]:
        timeout = DEFAULT_EXEC_TIMEOUT_SECONDS if timeout_secs is None else int(timeout_secs)
        preview = command_preview(command)
        try:
            result = run_shell_with_timeout(command, timeout_seconds=float(timeout), shell=self._shell)
        except subprocess.TimeoutExpired as exc:
            self._activity.record("exec_timeout", f"cmd='{preview}' timeout={timeout}s")
            self._logger.info(
                "Command timed out after %ss: %s",
                timeout,
                preview,
                extra={"component": "exec", "operation": "exec", "result": "timeout"},
            )
            raise ExecTimeoutError(f"Command timed out after {timeout}s") from exc
        except OSError as exc:
            self._activity.record("exec_failed", f"cmd='{preview}' error={single_line_preview(str(exc), 200)}")
            self._logger.error(
                "Command execution failed: %s",
                exc,
                extra={"component": "exec", "operation": "exec", "result": "error", "error_class": type(exc).__name__},
            )
            raise ExecSpawnError(f"Execution failed: {exc}") from exc

        self._activity.record(
            "exec",
            exec_success_details(command, result.exit_code, result.duration_ms, result.stdout, result.stderr),
        )
        self._logger.debug(
            "Command finished exit=%s: %s",
            result.exit_code,
            preview,
            extra={"component": "exec", "operation": "exec", "result": "ok", "duration_ms": result.duration_ms},
        )
        return {
            "exit_code": result.exit_code,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "duration_ms": result.duration_ms,
        }
