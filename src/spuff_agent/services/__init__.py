"""spuff-agent service modules."""

__all__ = [
    "activity_service",
    "auth_service",
    "devtools_service",
    "docker_service",
    "exec_service",
    "log_service",
    "metrics_service",
    "system_service",
    "ticker_service",
    "volume_service",
]
