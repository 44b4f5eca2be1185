from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from spuff_core import logging as core_logging
from spuff_core.config import DEFAULT_PORT, PORT_ENV, AgentConfig, load_agent_config, parse_port
from spuff_core.errors import ConfigError, TypedAgentError, typed_error_metadata, typed_error_payload, typed_error_status
from spuff_agent import __version__
from spuff_agent.api import register_agent_routes
from spuff_agent.state import AgentState


LOGGER = logging.getLogger("spuff_agent")


def _error_response(exc: BaseException) -> JSONResponse:
    status = typed_error_status(exc)
    payload = typed_error_payload(exc) or {"error": str(exc)}
    return JSONResponse(status_code=status, content=payload)


def _log_typed_error(request: Request, exc: TypedAgentError) -> None:
    metadata = typed_error_metadata(exc) or {}
    extra = {
        "component": "http",
        "operation": f"{request.method} {request.url.path}",
        "result": metadata.get("error_code", ""),
        "error_class": type(exc).__name__,
    }
    if typed_error_status(exc) >= 500:
        LOGGER.error("Request failed: %s", exc, extra=extra)
    else:
        LOGGER.info("Request rejected: %s", exc, extra=extra)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = str(error.get("msg") or "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request."


def create_app(state: AgentState, *, start_background_tasks: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if start_background_tasks:
            state.start_background_tasks()
        try:
            yield
        finally:
            if start_background_tasks:
                state.stop_background_tasks()

    app = FastAPI(title="spuff-agent", version=__version__, lifespan=lifespan)
    app.state.agent_state = state

    @app.exception_handler(TypedAgentError)
    async def _handle_typed_agent_error(request: Request, exc: TypedAgentError) -> JSONResponse:
        _log_typed_error(request, exc)
        return _error_response(exc)

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=int(exc.status_code or 500),
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    register_agent_routes(app, state=state, logger=LOGGER)
    return app


def _configure_agent_logging(level: str) -> None:
    core_logging.configure_structured_logger(LOGGER, level=core_logging.normalize_log_level(level))


def _startup_extra(**values: Any) -> dict[str, Any]:
    extra = {"component": "startup", "operation": "agent_start", "result": "", "duration_ms": 0, "error_class": ""}
    extra.update(values)
    return extra


@click.command(help="Run the spuff remote VM agent.")
@click.option("--host", default=None, show_default="127.0.0.1", help="Listen address.")
@click.option("--port", default=None, type=int, show_default=f"${PORT_ENV} or {DEFAULT_PORT}", help="Listen port.")
@click.option(
    "--config-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Optional TOML file with [agent] and [paths] tables.",
)
@click.option(
    "--log-level",
    default=None,
    show_default="$SPUFF_AGENT_LOG_LEVEL or info",
    type=click.Choice(core_logging.LOG_LEVEL_CHOICES, case_sensitive=False),
    help="Agent logging verbosity (applies to agent logs and Uvicorn).",
)
def main(host: str | None, port: int | None, config_file: Path | None, log_level: str | None) -> None:
    try:
        config: AgentConfig = load_agent_config(config_file)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    if host:
        config = replace(config, host=host)
    if port is not None:
        config = replace(config, port=parse_port(port, default=config.port))
    if log_level:
        config = replace(config, log_level=core_logging.normalize_log_level(log_level))

    _configure_agent_logging(config.log_level)
    raw_port = os.environ.get(PORT_ENV)
    if port is None and raw_port and parse_port(raw_port, default=-1) == -1:
        LOGGER.warning(
            "Invalid %s=%r, using port %s",
            PORT_ENV,
            raw_port,
            config.port,
            extra=_startup_extra(result="invalid_port"),
        )
    if not config.auth_enabled:
        LOGGER.warning(
            "SPUFF_AGENT_TOKEN is not set; authentication is disabled",
            extra=_startup_extra(result="auth_disabled"),
        )
    LOGGER.info(
        "Starting spuff-agent v%s host=%s port=%s user=%s log_level=%s",
        __version__,
        config.host,
        config.port,
        config.username,
        config.log_level,
        extra=_startup_extra(result="started"),
    )

    state = AgentState(config)
    state.record_activity("agent_started", f"version={__version__}")
    app = create_app(state, start_background_tasks=True)
    uvicorn.run(app, host=config.host, port=config.port, log_level=core_logging.uvicorn_log_level(config.log_level))


if __name__ == "__main__":
    main()
