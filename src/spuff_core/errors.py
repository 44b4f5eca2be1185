from __future__ import annotations


class TypedAgentError(RuntimeError):
    """Base class for typed operational errors surfaced to API clients."""

    error_code = "INTERNAL_ERROR"
    failure_class = "internal"
    status_code = 500

    def metadata(self) -> dict[str, str]:
        return {
            "error_code": self.error_code,
            "failure_class": self.failure_class,
        }

    def payload(self) -> dict[str, str]:
        return {"error": str(self)}


def typed_error_metadata(exc: BaseException) -> dict[str, str] | None:
    if isinstance(exc, TypedAgentError):
        return exc.metadata()
    return None


def typed_error_payload(exc: BaseException) -> dict[str, str] | None:
    if isinstance(exc, TypedAgentError):
        return exc.payload()
    return None


def typed_error_status(exc: BaseException) -> int:
    if isinstance(exc, TypedAgentError):
        return int(exc.status_code)
    return 500


class ConfigError(TypedAgentError):
    """Configuration parsing or validation error."""

    error_code = "CONFIG_ERROR"
    failure_class = "configuration"
    status_code = 400


class AuthenticationError(TypedAgentError):
    """Missing or mismatched X-Spuff-Token header."""

    error_code = "AUTHENTICATION_ERROR"
    failure_class = "client"
    status_code = 401


class LogAccessDeniedError(TypedAgentError):
    """Requested log path resolves outside the allowed log directory."""

    error_code = "LOG_ACCESS_DENIED"
    failure_class = "client"
    status_code = 403


class LogFileNotFoundError(TypedAgentError):
    """Requested log path does not exist or cannot be read."""

    error_code = "LOG_NOT_FOUND"
    failure_class = "not_found"
    status_code = 404


class ExecTimeoutError(TypedAgentError):
    """Proxied command exceeded its wall-clock timeout."""

    error_code = "EXEC_TIMEOUT"
    failure_class = "timeout"
    status_code = 408


class InstallInProgressError(TypedAgentError):
    """A devtools installation pipeline is already running."""

    error_code = "INSTALL_IN_PROGRESS"
    failure_class = "client"
    status_code = 409


class ExecSpawnError(TypedAgentError):
    """Proxied command could not be started."""

    error_code = "EXEC_SPAWN_ERROR"
    failure_class = "internal"
    status_code = 500


class CommandError(TypedAgentError):
    """Shell command exited unsuccessfully or could not be run."""

    error_code = "COMMAND_ERROR"
    failure_class = "internal"
    status_code = 500


class DockerUnavailableError(TypedAgentError):
    """Container runtime binary is missing or not responding."""

    error_code = "DOCKER_UNAVAILABLE"
    failure_class = "dependency"
    status_code = 503


class InvalidPayloadError(TypedAgentError):
    """Request body or query parameters failed validation."""

    error_code = "INVALID_PAYLOAD"
    failure_class = "client"
    status_code = 400
