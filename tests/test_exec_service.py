from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from spuff_core.errors import ExecSpawnError, ExecTimeoutError
from spuff_agent.integrations import ShellResult, run_shell_with_timeout
from spuff_agent.services import exec_service as exec_module
from spuff_agent.services.activity_service import ActivityService
from spuff_agent.services.exec_service import ExecService, command_preview, exec_success_details
from spuff_agent.store import ExecLogStore


@pytest.fixture
def activity(tmp_path: Path) -> ActivityService:
    return ActivityService(
        exec_log=ExecLogStore(log_file=tmp_path / "spuff-exec.log"),
        logger=logging.getLogger("spuff_agent.test.exec"),
    )


@pytest.fixture
def service(activity: ActivityService) -> ExecService:
    return ExecService(activity=activity, logger=logging.getLogger("spuff_agent.test.exec"))


def test_command_preview_truncates_and_escapes() -> None:
    assert command_preview("echo hi") == "echo hi"
    long_command = "x" * 100
    assert command_preview(long_command) == "x" * 80 + "..."
    assert command_preview("a\tb") == "a\\tb"


def test_exec_success_details_format() -> None:
    details = exec_success_details("echo hi", 0, 4, "hi\n", "")
    assert details == "cmd='echo hi' exit=0 duration=4ms\thi\\n\t"


def test_execute_echo(service: ExecService, activity: ActivityService) -> None:
    result = service.execute("echo hi")

    assert result["exit_code"] == 0
    assert result["stdout"] == "hi\n"
    assert result["stderr"] == ""
    assert isinstance(result["duration_ms"], int)
    entry = activity.recent(1)[0]
    assert entry.event == "exec"
    assert entry.details.startswith("cmd='echo hi' exit=0")


def test_execute_reports_nonzero_exit(service: ExecService) -> None:
    result = service.execute("echo oops >&2; exit 3")

    assert result["exit_code"] == 3
    assert result["stderr"] == "oops\n"


def test_execute_timeout_kills_child(service: ExecService, activity: ActivityService) -> None:
    with pytest.raises(ExecTimeoutError, match=r"^Command timed out after 1s$"):
        service.execute("sleep 5", timeout_secs=1)

    entry = activity.recent(1)[0]
    assert entry.event == "exec_timeout"
    assert entry.details == "cmd='sleep 5' timeout=1s"


def test_execute_spawn_failure(activity: ActivityService) -> None:
    service = ExecService(
        activity=activity,
        logger=logging.getLogger("spuff_agent.test.exec"),
        shell="/nonexistent/shell",
    )

    with pytest.raises(ExecSpawnError, match="^Execution failed: "):
        service.execute("true")

    assert activity.recent(1)[0].event == "exec_failed"


def test_execute_uses_default_timeout(service: ExecService) -> None:
    fake = ShellResult(exit_code=0, stdout="", stderr="", duration_ms=1)
    with patch.object(exec_module, "run_shell_with_timeout", return_value=fake) as runner:
        service.execute("true")

    assert runner.call_args.kwargs["timeout_seconds"] == 30.0


def test_signal_exit_maps_to_minus_one() -> None:
    result = run_shell_with_timeout("kill -9 $$", timeout_seconds=5)
    assert result.exit_code == -1


def test_timeout_raises_timeout_expired() -> None:
    with pytest.raises(subprocess.TimeoutExpired):
        run_shell_with_timeout("sleep 5", timeout_seconds=0.2)
