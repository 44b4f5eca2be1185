from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable

from spuff_core.errors import CommandError
from spuff_agent.integrations import run_command


SSHFS_FS_TYPE = "fuse.sshfs"
STAT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class MountInfo:
    source: str
    target: str
    fs_type: str
    options: list[str]


def parse_mounts(content: str) -> list[MountInfo]:
    mounts: list[MountInfo] = []
    for line in content.splitlines():
        parts = line.split()
        if len(parts) < 4:
            continue
        mounts.append(MountInfo(source=parts[0], target=parts[1], fs_type=parts[2], options=parts[3].split(",")))
    return mounts


class VolumeService:
    def __init__(
        self,
        *,
        mounts_file: Path,
        logger: logging.Logger,
        command_runner: Callable[..., Any] = run_command,
    ) -> None:
        self._mounts_file = Path(mounts_file)
        self._logger = logger
        self._run = command_runner

    def list_mounts(self) -> list[MountInfo]:
        try:
            content = self._mounts_file.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self._logger.warning(
                "Failed to read %s: %s",
                self._mounts_file,
                exc,
                extra={"component": "volumes", "operation": "list_mounts", "result": "error"},
            )
            return []
        return [mount for mount in parse_mounts(content) if mount.fs_type == SSHFS_FS_TYPE]

    def check_mount(self, mount: MountInfo) -> dict[str, Any]:
        # a hung sshfs mount blocks stat, so probe it in a bounded child process
        started = time.monotonic()
        status: dict[str, Any] = {"mount": asdict(mount), "accessible": False, "latency_ms": None, "error": None}
        try:
            result = self._run(["stat", mount.target], check=False, timeout=STAT_TIMEOUT_SECONDS)
        except CommandError as exc:
            status["error"] = f"Failed to check status: {exc}"
            return status
        if result.returncode == 0:
            status["accessible"] = True
            status["latency_ms"] = int((time.monotonic() - started) * 1000)
        else:
            status["error"] = (result.stderr or "").strip()
        return status

    def volumes_payload(self) -> dict[str, Any]:
        return {"mounts": [self.check_mount(mount) for mount in self.list_mounts()]}
