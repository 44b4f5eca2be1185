from __future__ import annotations

from typing import Any

from spuff_agent.devtools import TOOL_CATALOG, DevtoolsManager, InstallConfig
from spuff_agent.services.activity_service import ActivityService


class DevtoolsService:
    def __init__(self, *, manager: DevtoolsManager, activity: ActivityService) -> None:
        self._manager = manager
        self._activity = activity

    @property
    def manager(self) -> DevtoolsManager:
        return self._manager

    def state_payload(self) -> dict[str, Any]:
        return self._manager.state_payload()

    def start_install(self, payload: Any) -> dict[str, Any]:
        config = InstallConfig.from_payload(payload)
        self._manager.install(config)
        enabled = [tool_id for tool_id, _name, _description in TOOL_CATALOG if config.is_enabled(tool_id)]
        self._activity.record("devtools_install", f"tools={','.join(enabled) or 'none'}")
        return {
            "status": "started",
            "message": "Devtools installation started. Poll GET /devtools for progress.",
        }
