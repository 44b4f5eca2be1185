from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse

from spuff_core.errors import InvalidPayloadError
from spuff_agent.services.auth_service import TOKEN_HEADER
from spuff_agent.services.log_service import SSE_HEADERS


async def _json_body(request: Request, *, allow_empty: bool = False) -> Any:
    raw_body = await request.body()
    if not raw_body.strip():
        if allow_empty:
            return None
        raise InvalidPayloadError("Request body is required.")
    try:
        return json.loads(raw_body)
    except ValueError as exc:
        raise InvalidPayloadError(f"Invalid JSON payload: {exc}") from exc


def _parse_exec_payload(payload: Any) -> tuple[str, int | None]:
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Invalid JSON payload.")
    command = payload.get("command")
    if not isinstance(command, str):
        raise InvalidPayloadError("command must be a string.")
    timeout_secs = payload.get("timeout_secs")
    if timeout_secs is not None and (isinstance(timeout_secs, bool) or not isinstance(timeout_secs, int) or timeout_secs < 0):
        raise InvalidPayloadError("timeout_secs must be a non-negative integer.")
    return command, timeout_secs


def register_agent_routes(app: FastAPI, *, state: Any, logger: logging.Logger) -> None:
    def require_token(x_spuff_token: str | None = Header(default=None, alias=TOKEN_HEADER)) -> None:
        state.auth_service.authenticate(x_spuff_token)
        state.update_activity()

    @app.get("/health")
    def health() -> dict[str, Any]:
        return state.system_service.health_payload()

    router = APIRouter(dependencies=[Depends(require_token)])

    @router.get("/metrics")
    def api_metrics() -> dict[str, Any]:
        return state.metrics_service.metrics_payload()

    @router.get("/status")
    def api_status() -> dict[str, Any]:
        return state.system_service.status_payload()

    @router.get("/processes")
    def api_processes() -> list[dict[str, Any]]:
        return state.metrics_service.processes_payload()

    @router.post("/exec")
    async def api_exec(request: Request) -> dict[str, Any]:
        command, timeout_secs = _parse_exec_payload(await _json_body(request))
        return await asyncio.to_thread(state.exec_service.execute, command, timeout_secs)

    @router.get("/exec-log")
    def api_exec_log(lines: str | None = None) -> dict[str, Any]:
        return state.activity_service.exec_log_payload(lines)

    @router.post("/heartbeat")
    def api_heartbeat() -> dict[str, Any]:
        payload = state.system_service.heartbeat_payload()
        state.record_activity("heartbeat")
        return payload

    @router.get("/logs")
    def api_logs(file: str | None = None, lines: str | None = None) -> dict[str, Any]:
        return state.log_service.read_lines(file, lines)

    @router.get("/logs/stream")
    async def api_logs_stream(
        request: Request,
        file: str | None = None,
        initial_lines: str | None = None,
    ) -> StreamingResponse:
        frames = await asyncio.to_thread(
            state.log_service.open_stream,
            file,
            initial_lines,
            is_disconnected=request.is_disconnected,
        )
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    @router.get("/cloud-init")
    def api_cloud_init() -> dict[str, Any]:
        return state.system_service.cloud_init_payload()

    @router.get("/activity")
    def api_activity(limit: str | None = None) -> dict[str, Any]:
        return state.activity_service.activity_payload(limit)

    @router.get("/devtools")
    def api_devtools() -> dict[str, Any]:
        return state.devtools_service.state_payload()

    @router.post("/devtools/install")
    async def api_devtools_install(request: Request) -> JSONResponse:
        payload = await _json_body(request, allow_empty=True)
        result = state.devtools_service.start_install(payload)
        logger.info(
            "Devtools installation accepted",
            extra={"component": "devtools", "operation": "install", "result": "accepted"},
        )
        return JSONResponse(status_code=202, content=result)

    @router.get("/docker/containers")
    def api_docker_containers() -> dict[str, Any]:
        return state.docker_service.containers_payload()

    @router.post("/docker/containers/{name}/start")
    def api_docker_start(name: str) -> dict[str, Any]:
        return state.docker_service.container_action("start", name)

    @router.post("/docker/containers/{name}/stop")
    def api_docker_stop(name: str, timeout: str | None = None) -> dict[str, Any]:
        return state.docker_service.container_action("stop", name, timeout)

    @router.post("/docker/containers/{name}/restart")
    def api_docker_restart(name: str, timeout: str | None = None) -> dict[str, Any]:
        return state.docker_service.container_action("restart", name, timeout)

    @router.get("/docker/containers/{name}/logs")
    def api_docker_logs(name: str, lines: str | None = None, since: str | None = None) -> dict[str, Any]:
        return state.docker_service.container_logs(name, lines, since)

    @router.get("/volumes")
    def api_volumes() -> dict[str, Any]:
        return state.volume_service.volumes_payload()

    app.include_router(router)
