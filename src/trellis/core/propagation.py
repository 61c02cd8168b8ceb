"""Constraint propagation over the ephemeral working set.

Two policies:

* **free** -- breadth-first shifting in both directions from the changed
  task, moving any connected task needed to restore the dependency rules.
* **enforced** -- only the dragged task moves; its edges are clamped
  against its parents and its dependent children until a fixed point.

Neither policy assumes an acyclic graph.  Both are bounded by a step cap
and report whether they stabilised, so a dependency cycle ends in a
best-effort state flagged as non-converged rather than a hang.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass

from trellis.core.constraints import (
    DEPENDENCY_RULES,
    EDGE_FOR_MODE,
    apply_child_constraints_to_parent,
    apply_parent_constraints,
    violation_delta,
)
from trellis.core.graph import Edge
from trellis.core.tasks import EphemeralTask

logger = logging.getLogger(__name__)

CLAMP_MODES: frozenset[str] = frozenset({"move", "left", "right"})


@dataclass(frozen=True)
class PropagationReport:
    """Outcome of one propagation run."""

    converged: bool
    steps: int

    def __and__(self, other: PropagationReport) -> PropagationReport:
        return PropagationReport(
            converged=self.converged and other.converged,
            steps=self.steps + other.steps,
        )


# ---------------------------------------------------------------------------
# Free policy
# ---------------------------------------------------------------------------


def recalc_downstream(
    changed_id: str,
    ephemeral: Mapping[str, EphemeralTask],
    downstream: Mapping[str, list[Edge]],
    max_steps: int,
) -> PropagationReport:
    """Push dependents later, breadth-first, until nothing else moves."""
    queue: deque[str] = deque([changed_id])
    steps = 0
    while queue:
        if steps >= max_steps:
            logger.warning(
                "Downstream propagation from %s stopped after %d steps without converging",
                changed_id,
                steps,
            )
            return PropagationReport(converged=False, steps=steps)
        parent_id = queue.popleft()
        steps += 1
        for edge in downstream.get(parent_id, ()):
            child = ephemeral.get(edge.id)
            if child is None:
                continue
            if apply_parent_constraints(child, ephemeral):
                queue.append(edge.id)
    return PropagationReport(converged=True, steps=steps)


def recalc_upstream(
    changed_id: str,
    ephemeral: Mapping[str, EphemeralTask],
    upstream: Mapping[str, list[Edge]],
    max_steps: int,
) -> PropagationReport:
    """Pull dependencies earlier, breadth-first, until nothing else moves."""
    queue: deque[str] = deque([changed_id])
    steps = 0
    while queue:
        if steps >= max_steps:
            logger.warning(
                "Upstream propagation from %s stopped after %d steps without converging",
                changed_id,
                steps,
            )
            return PropagationReport(converged=False, steps=steps)
        child_id = queue.popleft()
        steps += 1
        for edge in upstream.get(child_id, ()):
            parent = ephemeral.get(edge.id)
            if parent is None:
                continue
            if apply_child_constraints_to_parent(parent, ephemeral):
                queue.append(edge.id)
    return PropagationReport(converged=True, steps=steps)


def propagate_two_way(
    changed_id: str,
    ephemeral: Mapping[str, EphemeralTask],
    downstream: Mapping[str, list[Edge]],
    upstream: Mapping[str, list[Edge]],
    max_steps: int,
) -> PropagationReport:
    """Run the downstream pass then the upstream pass, each to exhaustion."""
    down = recalc_downstream(changed_id, ephemeral, downstream, max_steps)
    up = recalc_upstream(changed_id, ephemeral, upstream, max_steps)
    return down & up


# ---------------------------------------------------------------------------
# Enforced policy
# ---------------------------------------------------------------------------


def _clamp_against_parents(
    task: EphemeralTask,
    ephemeral: Mapping[str, EphemeralTask],
    mode: str,
) -> None:
    for dep in task.dependencies:
        parent = ephemeral.get(dep.target_id)
        if parent is None:
            continue
        delta = violation_delta(dep.type, task, parent)
        if not delta:
            continue
        child_edge, _ = DEPENDENCY_RULES[dep.type]
        if mode == "move":
            task.shift(delta)
        elif EDGE_FOR_MODE[mode] == child_edge:
            setattr(task, child_edge, getattr(task, child_edge) + delta)


def _clamp_against_children(
    task: EphemeralTask,
    ephemeral: Mapping[str, EphemeralTask],
    downstream: Mapping[str, list[Edge]],
    mode: str,
) -> None:
    for edge in downstream.get(task.id, ()):
        child = ephemeral.get(edge.id)
        if child is None:
            continue
        delta = violation_delta(edge.type, child, task)
        if not delta:
            continue
        _, parent_edge = DEPENDENCY_RULES[edge.type]
        if mode == "move":
            task.shift(-delta)
        elif EDGE_FOR_MODE[mode] == parent_edge:
            setattr(task, parent_edge, getattr(task, parent_edge) - delta)


def clamp_task_to_constraints(
    task: EphemeralTask,
    ephemeral: Mapping[str, EphemeralTask],
    downstream: Mapping[str, list[Edge]],
    mode: str,
    max_scans: int,
) -> PropagationReport:
    """Clamp *task* against its parents and its dependent children.

    ``move`` shifts the whole interval, ``left`` moves only the start edge
    and ``right`` only the end edge; a violation on the edge the mode may
    not move is left for the complementary mode.  No other task is touched.
    Scans repeat until one full scan changes nothing.

    Raises:
        ValueError: If *mode* is not ``move``, ``left`` or ``right``.
    """
    if mode not in CLAMP_MODES:
        raise ValueError(f"Invalid clamp mode: '{mode}'")
    if not task.has_span():
        return PropagationReport(converged=True, steps=0)

    scans = 0
    while scans < max_scans:
        scans += 1
        before = (task.start, task.end)
        _clamp_against_parents(task, ephemeral, mode)
        _clamp_against_children(task, ephemeral, downstream, mode)
        if (task.start, task.end) == before:
            return PropagationReport(converged=True, steps=scans)

    logger.warning(
        "Clamping %s in %s mode did not stabilise within %d scans",
        task.id,
        mode,
        max_scans,
    )
    return PropagationReport(converged=False, steps=scans)
