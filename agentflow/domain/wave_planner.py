"""Dependency-wave planning for workflows that declare ``depends_on``.

Pure: takes phases, returns waves. No I/O, no session state.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from agentflow.domain.errors import WorkflowDefinitionError
from agentflow.domain.models.workflow import Phase

logger = logging.getLogger(__name__)


class WaveCyclePolicy(str, Enum):
    """What to do when dependencies can never be satisfied."""

    DEGRADE = "degrade"  # Run the remainder one phase at a time
    FAIL = "fail"        # Reject the workflow


@dataclass
class DependencyGraph:
    """Adjacency map (dependency -> dependents) plus in-degree table."""

    order: list[str]
    dependents: dict[str, list[str]] = field(default_factory=dict)
    in_degree: dict[str, int] = field(default_factory=dict)
    # Phase id -> dependency ids that name no phase in the workflow
    unknown: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def from_phases(cls, phases: Sequence[Phase]) -> "DependencyGraph":
        order = [p.id for p in phases]
        known = set(order)
        graph = cls(order=order)
        for pid in order:
            graph.dependents[pid] = []
            graph.in_degree[pid] = 0

        for phase in phases:
            for dep in set(phase.depends_on):
                if dep in known:
                    graph.dependents[dep].append(phase.id)
                    graph.in_degree[phase.id] += 1
                else:
                    graph.unknown.setdefault(phase.id, set()).add(dep)
        return graph


@dataclass
class WavePlan:
    waves: list[list[Phase]]
    degraded: bool = False
    # Phase ids that could not be placed by dependency order
    stalled: list[str] = field(default_factory=list)


def plan_waves(
    phases: Sequence[Phase],
    policy: WaveCyclePolicy = WaveCyclePolicy.DEGRADE,
) -> WavePlan:
    """Group phases into waves.

    Wave k holds every phase whose dependencies all sit in waves < k, in
    declaration order. Dependencies naming unknown phases are never
    satisfiable. When nothing more is eligible (a cycle or an unknown
    dependency) the remainder either becomes one singleton wave per phase
    in declaration order, or raises under ``WaveCyclePolicy.FAIL``.

    Raises:
        WorkflowDefinitionError: unsatisfiable dependencies under FAIL
    """
    graph = DependencyGraph.from_phases(phases)
    by_id = {p.id: p for p in phases}
    in_degree = dict(graph.in_degree)
    scheduled: set[str] = set()
    waves: list[list[Phase]] = []

    while len(scheduled) < len(graph.order):
        ready = [
            pid
            for pid in graph.order
            if pid not in scheduled
            and in_degree[pid] == 0
            and pid not in graph.unknown
        ]
        if not ready:
            break
        waves.append([by_id[pid] for pid in ready])
        for pid in ready:
            scheduled.add(pid)
            for dependent in graph.dependents[pid]:
                in_degree[dependent] -= 1

    stalled = [pid for pid in graph.order if pid not in scheduled]
    if not stalled:
        return WavePlan(waves=waves)

    detail = ", ".join(
        f"{pid} (unknown: {sorted(graph.unknown[pid])})"
        if pid in graph.unknown
        else pid
        for pid in stalled
    )
    if policy == WaveCyclePolicy.FAIL:
        raise WorkflowDefinitionError(
            f"Unsatisfiable phase dependencies: {detail}"
        )

    logger.warning(
        f"Unsatisfiable phase dependencies, running sequentially: {detail}"
    )
    waves.extend([by_id[pid]] for pid in stalled)
    return WavePlan(waves=waves, degraded=True, stalled=stalled)
