from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Thread
from typing import Callable, Iterable, Sequence

from spuff_agent.devtools.types import AI_TOOL_IDS, SHELL_TOOL_IDS, InstallConfig


LOGGER = logging.getLogger("spuff_agent.devtools")


@dataclass(frozen=True)
class PipelineStep:
    name: str
    deps: tuple[str, ...]
    runner: Callable[[], None]
    enabled: bool = True


def default_step_graph() -> list[tuple[str, tuple[str, ...]]]:
    """Tool ids with their dependencies, in catalog order.

    Shell tools and docker are independent roots. Node.js waits for all of
    them, then the AI tools form a chain because they share the global npm
    store. The remaining steps run one after another.
    """
    roots = ("docker",) + SHELL_TOOL_IDS
    graph: list[tuple[str, tuple[str, ...]]] = [(tool_id, ()) for tool_id in roots]
    graph.append(("nodejs", roots))
    previous = "nodejs"
    for tool_id in AI_TOOL_IDS:
        graph.append((tool_id, (previous,)))
        previous = tool_id
    for tool_id in ("devenv", "dotfiles", "tailscale"):
        graph.append((tool_id, (previous,)))
        previous = tool_id
    return graph


def plan_stages(steps: Sequence[PipelineStep]) -> list[list[PipelineStep]]:
    """Group steps by dependency depth; a step lands one stage after its deepest dependency."""
    by_name = {step.name: step for step in steps}
    if len(by_name) != len(steps):
        raise ValueError("Pipeline step names must be unique.")
    depth: dict[str, int] = {}
    visiting: set[str] = set()

    def resolve(name: str) -> int:
        if name in depth:
            return depth[name]
        if name in visiting:
            raise ValueError(f"Pipeline dependency cycle at {name!r}.")
        step = by_name.get(name)
        if step is None:
            raise ValueError(f"Unknown pipeline dependency {name!r}.")
        visiting.add(name)
        level = 0
        for dep in step.deps:
            level = max(level, resolve(dep) + 1)
        visiting.discard(name)
        depth[name] = level
        return level

    for step in steps:
        resolve(step.name)
    stages: list[list[PipelineStep]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for step in steps:
        stages[depth[step.name]].append(step)
    return stages


def _run_step(step: PipelineStep) -> None:
    try:
        step.runner()
    except Exception:
        LOGGER.exception(
            "Pipeline step %s raised",
            step.name,
            extra={"component": "devtools", "operation": "run_step", "result": "error", "tool_id": step.name},
        )


def run_stages(stages: Iterable[Sequence[PipelineStep]]) -> None:
    """Run each stage to completion before the next; steps inside a stage run in parallel."""
    for index, stage in enumerate(stages, start=1):
        active = [step for step in stage if step.enabled]
        if not active:
            continue
        LOGGER.debug(
            "Running install stage %s: %s",
            index,
            ", ".join(step.name for step in active),
            extra={"component": "devtools", "operation": "run_stage"},
        )
        if len(active) == 1:
            _run_step(active[0])
            continue
        workers = [
            Thread(target=_run_step, args=(step,), daemon=True, name=f"spuff-devtools-{step.name}")
            for step in active
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()


def build_pipeline(
    config: InstallConfig,
    step_runner: Callable[[str], None],
    graph: Sequence[tuple[str, tuple[str, ...]]] | None = None,
) -> list[PipelineStep]:
    return [
        PipelineStep(
            name=tool_id,
            deps=tuple(deps),
            runner=lambda tool_id=tool_id: step_runner(tool_id),
            enabled=config.is_enabled(tool_id),
        )
        for tool_id, deps in (graph if graph is not None else default_step_graph())
    ]
