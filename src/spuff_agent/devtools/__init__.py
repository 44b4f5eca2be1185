from spuff_agent.devtools.manager import DevtoolsManager
from spuff_agent.devtools.pipeline import PipelineStep, build_pipeline, default_step_graph, plan_stages, run_stages
from spuff_agent.devtools.types import (
    InstallConfig,
    InstallState,
    ToolEntry,
    ToolStatus,
    ToolStatusKind,
    TOOL_CATALOG,
)

__all__ = [
    "DevtoolsManager",
    "InstallConfig",
    "InstallState",
    "PipelineStep",
    "TOOL_CATALOG",
    "ToolEntry",
    "ToolStatus",
    "ToolStatusKind",
    "build_pipeline",
    "default_step_graph",
    "plan_stages",
    "run_stages",
]
