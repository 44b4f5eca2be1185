from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping


DEFAULT_USERNAME = "dev"


@dataclass(frozen=True)
class AgentPaths:
    allowed_log_dir: Path = Path("/var/log")
    default_log_file: Path = Path("/var/log/cloud-init-output.log")
    exec_log_file: Path = Path("/var/log/spuff-exec.log")
    heartbeat_file: Path = Path("/tmp/spuff-agent-heartbeat")
    bootstrap_status_file: Path = Path("/opt/spuff/bootstrap.status")
    username_file: Path = Path("/opt/spuff/username")
    cloud_init_result_file: Path = Path("/run/cloud-init/result.json")
    boot_finished_file: Path = Path("/var/lib/cloud/instance/boot-finished")
    mounts_file: Path = Path("/proc/mounts")

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(cls.__dataclass_fields__)

    def with_overrides(self, values: Mapping[str, Any] | None) -> "AgentPaths":
        if not values:
            return self
        merged = {name: getattr(self, name) for name in self.field_names()}
        for key, value in values.items():
            if key in merged and value is not None:
                merged[key] = Path(str(value)).expanduser()
        return AgentPaths(**merged)


def read_username_file(path: Path) -> str:
    try:
        raw = path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return ""
    for line in raw.splitlines():
        candidate = line.strip()
        if candidate:
            return candidate
    return ""


def resolve_username(env_value: str | None, username_file: Path) -> str:
    configured = str(env_value or "").strip()
    if configured:
        return configured
    from_file = read_username_file(username_file)
    if from_file:
        return from_file
    return DEFAULT_USERNAME
