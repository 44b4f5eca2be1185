from __future__ import annotations

import logging
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from spuff_core.errors import CommandError, DockerUnavailableError
from spuff_agent.services.docker_service import DockerService, parse_container_line
from spuff_agent.services.metrics_service import MetricsService, MetricsSnapshot, collect_metrics, top_processes
from spuff_agent.services.system_service import ActivityClock, SystemService, parse_cloud_init_status
from spuff_agent.services.ticker_service import TickerService
from spuff_agent.services.volume_service import VolumeService, parse_mounts


LOGGER = logging.getLogger("spuff_agent.test.system")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _completed(cmd: list[str], code: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(cmd, code, stdout, stderr)


def test_activity_clock_tracks_idle_and_uptime() -> None:
    fake = FakeClock()
    clock = ActivityClock(clock=fake)

    fake.now += timedelta(seconds=90)
    assert clock.uptime_seconds() == 90
    assert clock.idle_seconds() == 90

    clock.update_activity()
    fake.now += timedelta(seconds=5)
    assert clock.idle_seconds() == 5
    assert clock.uptime_seconds() == 95


def test_parse_cloud_init_status() -> None:
    assert parse_cloud_init_status('{"status": "done", "errors": ["a", 3]}') == ("done", True, ["a"])
    assert parse_cloud_init_status('{"status": "running"}') == ("running", False, [])
    assert parse_cloud_init_status("not json") == ("unknown", False, [])
    assert parse_cloud_init_status("[]") == ("unknown", False, [])


def _system_service(tmp_path: Path, runner) -> SystemService:
    return SystemService(
        clock=ActivityClock(),
        bootstrap_status_file=tmp_path / "bootstrap.status",
        cloud_init_result_file=tmp_path / "result.json",
        boot_finished_file=tmp_path / "boot-finished",
        agent_version="1.2.3",
        logger=LOGGER,
        command_runner=runner,
    )


def test_cloud_init_payload(tmp_path: Path) -> None:
    (tmp_path / "boot-finished").write_text("123.4 - Mon\n", encoding="utf-8")
    service = _system_service(tmp_path, lambda cmd, **_kw: _completed(cmd, 0, '{"status": "done", "errors": []}'))

    assert service.cloud_init_payload() == {
        "status": "done",
        "done": True,
        "errors": [],
        "boot_finished": "123.4 - Mon",
    }


def test_cloud_init_payload_when_binary_missing(tmp_path: Path) -> None:
    def missing(cmd: list[str], **_kw: object) -> subprocess.CompletedProcess[str]:
        raise CommandError("Command not found: cloud-init")

    payload = _system_service(tmp_path, missing).cloud_init_payload()

    assert payload == {"status": "unavailable", "done": False, "errors": [], "boot_finished": None}


def test_status_payload_defaults(tmp_path: Path) -> None:
    payload = _system_service(tmp_path, None).status_payload()

    assert payload["bootstrap_status"] == "unknown"
    assert payload["bootstrap_ready"] is False
    assert payload["cloud_init_done"] is False
    assert payload["agent_version"] == "1.2.3"
    assert payload["hostname"]


def test_metrics_service_swaps_snapshot() -> None:
    snapshots = iter([MetricsSnapshot(cpu_usage=1.0), MetricsSnapshot(cpu_usage=2.0)])
    service = MetricsService(logger=LOGGER, collector=lambda: next(snapshots))

    assert service.metrics_payload()["cpu_usage"] == 0.0
    service.refresh()
    assert service.metrics_payload()["cpu_usage"] == 1.0
    service.refresh()
    assert service.snapshot().cpu_usage == 2.0
    assert service.metrics_payload()["load_avg"] == {"one": 0.0, "five": 0.0, "fifteen": 0.0}


def test_metrics_refresh_quietly_logs_failures() -> None:
    def broken() -> MetricsSnapshot:
        raise OSError("proc unavailable")

    service = MetricsService(logger=LOGGER, collector=broken)
    service.refresh_quietly()

    assert service.snapshot() == MetricsSnapshot()


def test_collect_metrics_and_top_processes_from_psutil() -> None:
    snapshot = collect_metrics()
    assert snapshot.memory_total > 0
    assert snapshot.cpus >= 1

    processes = top_processes(3)
    assert len(processes) <= 3
    assert all(set(item) == {"pid", "name", "cpu_usage", "memory"} for item in processes)
    usages = [item["cpu_usage"] for item in processes]
    assert usages == sorted(usages, reverse=True)


def test_ticker_writes_heartbeat_file(tmp_path: Path) -> None:
    heartbeat = tmp_path / "heartbeat"
    refreshed: list[int] = []
    ticker = TickerService(
        refresh_metrics=lambda: refreshed.append(1),
        idle_seconds=lambda: 42,
        heartbeat_file=heartbeat,
        logger=LOGGER,
    )

    ticker.metrics_tick()
    ticker.heartbeat_tick()

    assert refreshed == [1]
    assert heartbeat.read_text(encoding="utf-8") == "42"


def test_ticker_swallows_heartbeat_write_errors(tmp_path: Path) -> None:
    ticker = TickerService(
        refresh_metrics=lambda: None,
        idle_seconds=lambda: 1,
        heartbeat_file=tmp_path / "missing" / "heartbeat",
        logger=LOGGER,
    )

    ticker.heartbeat_tick()


def test_ticker_threads_start_and_stop(tmp_path: Path) -> None:
    heartbeat = tmp_path / "heartbeat"
    ticker = TickerService(
        refresh_metrics=lambda: None,
        idle_seconds=lambda: 7,
        heartbeat_file=heartbeat,
        logger=LOGGER,
        metrics_interval_seconds=0.01,
        heartbeat_interval_seconds=0.01,
    )

    ticker.start()
    ticker.stop()

    assert heartbeat.read_text(encoding="utf-8") == "7"


def test_parse_container_line_pads_missing_fields() -> None:
    info = parse_container_line("abc\tweb\tnginx")

    assert info.id == "abc"
    assert info.name == "web"
    assert info.ports == []
    assert info.created == ""


def test_docker_unavailable_listing() -> None:
    def missing(cmd: list[str], **_kw: object) -> subprocess.CompletedProcess[str]:
        raise CommandError("Command not found: docker")

    service = DockerService(logger=LOGGER, command_runner=missing)

    assert service.containers_payload() == {"available": False, "containers": []}
    result = service.container_action("start", "web")
    assert result["success"] is False
    assert result["message"].startswith("Failed to execute docker start")


def test_docker_action_failure_and_logs() -> None:
    def runner(cmd: list[str], **_kw: object) -> subprocess.CompletedProcess[str]:
        if cmd[1] == "restart":
            return _completed(cmd, 1, "", "no such container")
        if cmd[1] == "logs":
            return _completed(cmd, 0, "out\n", "err\n")
        return _completed(cmd, 0)

    service = DockerService(logger=LOGGER, command_runner=runner)

    restart = service.container_action("restart", "web")
    assert restart == {"success": False, "message": "Failed to restart container: no such container"}
    assert service.container_logs("web", 5, "10m") == {"logs": "out\nerr\n"}
    with pytest.raises(ValueError):
        service.container_action("pause", "web")


def test_docker_logs_failure_raises() -> None:
    service = DockerService(logger=LOGGER, command_runner=lambda cmd, **_kw: _completed(cmd, 1, "", "boom"))

    with pytest.raises(CommandError, match="boom"):
        service.container_logs("web")


def test_parse_mounts_and_sshfs_filter(tmp_path: Path) -> None:
    mounts_file = tmp_path / "mounts"
    mounts_file.write_text(
        "proc /proc proc rw,nosuid 0 0\n"
        "dev@host:/src /mnt/src fuse.sshfs rw,user_id=1000 0 0\n"
        "broken\n",
        encoding="utf-8",
    )
    assert len(parse_mounts(mounts_file.read_text(encoding="utf-8"))) == 2

    calls: list[list[str]] = []

    def runner(cmd: list[str], **_kw: object) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        return _completed(cmd, 0)

    payload = VolumeService(mounts_file=mounts_file, logger=LOGGER, command_runner=runner).volumes_payload()

    assert calls == [["stat", "/mnt/src"]]
    assert len(payload["mounts"]) == 1
    mount = payload["mounts"][0]
    assert mount["mount"] == {
        "source": "dev@host:/src",
        "target": "/mnt/src",
        "fs_type": "fuse.sshfs",
        "options": ["rw", "user_id=1000"],
    }
    assert mount["accessible"] is True
    assert isinstance(mount["latency_ms"], int)
    assert mount["error"] is None


def test_inaccessible_mount_reports_error(tmp_path: Path) -> None:
    mounts_file = tmp_path / "mounts"
    mounts_file.write_text("dev@host:/src /mnt/src fuse.sshfs rw 0 0\n", encoding="utf-8")
    service = VolumeService(
        mounts_file=mounts_file,
        logger=LOGGER,
        command_runner=lambda cmd, **_kw: _completed(cmd, 1, "", "stat: Transport endpoint is not connected\n"),
    )

    mount = service.volumes_payload()["mounts"][0]
    assert mount["accessible"] is False
    assert mount["latency_ms"] is None
    assert mount["error"] == "stat: Transport endpoint is not connected"


def test_missing_mounts_file_yields_empty_list(tmp_path: Path) -> None:
    service = VolumeService(mounts_file=tmp_path / "nope", logger=LOGGER)
    assert service.volumes_payload() == {"mounts": []}


def test_missing_docker_binary_raises_unavailable_for_logs() -> None:
    def missing(cmd: list[str], **_kw: object) -> subprocess.CompletedProcess[str]:
        try:
            raise FileNotFoundError(cmd[0])
        except FileNotFoundError as exc:
            raise CommandError(f"Command not found: {cmd[0]}") from exc

    service = DockerService(logger=LOGGER, command_runner=missing)

    with pytest.raises(DockerUnavailableError, match="^Docker is not available: Command not found: docker$"):
        service.container_logs("web")
    assert service.containers_payload() == {"available": False, "containers": []}
    assert service.container_action("stop", "web")["success"] is False
