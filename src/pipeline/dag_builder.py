# src/pipeline/dag_builder.py — v1
"""DAG builder — build execution graph from stage dependencies.

Produces a levelled execution plan. Detects cycles and validates that all
dependencies are resolvable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import networkx as nx

from shipyard.core.errors import StageGraphError

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """Ordered execution plan for pipeline stages.

    stages is a list of "levels": stages within the same level can
    run concurrently (no mutual dependencies). Levels execute sequentially.
    """

    stages: list[list[str]] = field(default_factory=list)
    total_stages: int = 0

    @property
    def flat_order(self) -> list[str]:
        """Return a flat topological ordering (no concurrency info)."""
        return [stage for level in self.stages for stage in level]

    @property
    def positions(self) -> dict[str, int]:
        """Ordinal position of every stage in flat order."""
        return {name: idx for idx, name in enumerate(self.flat_order)}


def build_dag(dependency_map: dict[str, list[str]]) -> ExecutionPlan:
    """Build an execution DAG from stage dependency declarations.

    Stages within a level keep their declaration order (dict order of
    ``dependency_map``), so a purely linear chain comes out unchanged.

    Args:
        dependency_map: stage_name -> list of dependency stage names.

    Returns:
        ExecutionPlan with levelled execution order.

    Raises:
        StageGraphError: If a cycle is detected or a dependency is missing.
    """
    if not dependency_map:
        return ExecutionPlan()

    declared = {name: idx for idx, name in enumerate(dependency_map)}
    graph = nx.DiGraph()
    graph.add_nodes_from(dependency_map)

    for stage, deps in dependency_map.items():
        for dep in deps:
            if dep not in declared:
                raise StageGraphError(
                    f"Stage '{stage}' depends on '{dep}' which is not defined"
                )
            graph.add_edge(dep, stage)

    if not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        involved = sorted({node for edge in cycle for node in edge[:2]})
        raise StageGraphError(f"Cycle detected involving stages: {involved}")

    levels = [
        sorted(generation, key=declared.__getitem__)
        for generation in nx.topological_generations(graph)
    ]
    plan = ExecutionPlan(stages=levels, total_stages=graph.number_of_nodes())
    logger.debug(
        "DAG built: %d stages in %d levels -> %s",
        plan.total_stages,
        len(plan.stages),
        plan.flat_order,
    )
    return plan
