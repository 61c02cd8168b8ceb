"""Dependency types and the pure constraint rules between two tasks.

Every dependency relates a *child* (the task declaring it) to a *parent*
(its ``target_id``) through exactly one inequality::

    FS  child.start >= parent.end
    SS  child.start >= parent.start
    FF  child.end   >= parent.end
    SF  child.end   >= parent.start

``lag`` is deliberately not consulted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trellis.core.tasks import EphemeralTask, Task

# ---------------------------------------------------------------------------
# Dependency types
# ---------------------------------------------------------------------------

# type -> (child edge, parent edge); the rule is child[edge] >= parent[edge].
DEPENDENCY_RULES: dict[str, tuple[str, str]] = {
    "FS": ("start", "end"),
    "SS": ("start", "start"),
    "FF": ("end", "end"),
    "SF": ("end", "start"),
}

DEPENDENCY_TYPES: frozenset[str] = frozenset(DEPENDENCY_RULES)

# Which edge a clamp mode is allowed to move.
EDGE_FOR_MODE: dict[str, str] = {"left": "start", "right": "end"}


def validate_dependency_type(dep_type: str) -> bool:
    """Return ``True`` if *dep_type* is one of FS, SS, FF, SF."""
    return isinstance(dep_type, str) and dep_type in DEPENDENCY_TYPES


def required_shift(child_value: int, parent_value: int) -> int:
    """Return how far the child edge lags behind the parent edge (0 if satisfied)."""
    return max(0, parent_value - child_value)


def violation_delta(dep_type: str, child: Task | EphemeralTask, parent: Task | EphemeralTask) -> int:
    """Return the positive amount by which *dep_type* is violated, or 0.

    Unknown types and tasks without a resolved span contribute nothing.
    """
    rule = DEPENDENCY_RULES.get(dep_type)
    if rule is None:
        return 0
    child_edge, parent_edge = rule
    child_value = getattr(child, child_edge)
    parent_value = getattr(parent, parent_edge)
    if child_value is None or parent_value is None:
        return 0
    return required_shift(child_value, parent_value)


# ---------------------------------------------------------------------------
# Forward: push a child after its parents moved
# ---------------------------------------------------------------------------


def apply_parent_constraints(child: EphemeralTask, ephemeral: Mapping[str, EphemeralTask]) -> bool:
    """Shift *child* later until every dependency on a present parent holds.

    Dependencies are visited in declaration order and each correction is
    applied before the next is checked.  The whole interval moves so the
    child's duration is preserved.  Returns ``True`` if the child moved.
    """
    if not child.dependencies or not child.has_span():
        return False
    changed = False
    for dep in child.dependencies:
        parent = ephemeral.get(dep.target_id)
        if parent is None:
            continue
        delta = violation_delta(dep.type, child, parent)
        if delta:
            child.shift(delta)
            changed = True
    return changed


# ---------------------------------------------------------------------------
# Reverse: pull a parent earlier when a child constrains it back
# ---------------------------------------------------------------------------


def apply_child_constraints_to_parent(
    parent: EphemeralTask,
    ephemeral: Mapping[str, EphemeralTask],
) -> bool:
    """Shift *parent* earlier until no dependent child in *ephemeral* is violated.

    Every working task that declares a dependency on *parent* is visited; at
    each visit the most restrictive correction so far is kept, so the parent
    absorbs the largest required shift.  Returns ``True`` if it moved.
    """
    if not parent.has_span():
        return False
    changed = False
    for candidate in ephemeral.values():
        if not candidate.dependencies:
            continue
        for dep in candidate.dependencies:
            if dep.target_id != parent.id:
                continue
            delta = violation_delta(dep.type, candidate, parent)
            if delta:
                parent.shift(-delta)
                changed = True
    return changed


# ---------------------------------------------------------------------------
# Violation scan
# ---------------------------------------------------------------------------


def find_violations(tasks: Iterable[Task]) -> list[dict]:
    """Return one record per dependency whose inequality does not hold.

    Dependencies on missing targets are skipped.
    """
    by_id = {t.id: t for t in tasks}
    violations: list[dict] = []
    for child in by_id.values():
        for dep in child.dependencies:
            parent = by_id.get(dep.target_id)
            if parent is None:
                continue
            delta = violation_delta(dep.type, child, parent)
            if delta:
                violations.append(
                    {
                        "task_id": child.id,
                        "target_id": parent.id,
                        "type": dep.type,
                        "delta_ms": delta,
                    }
                )
    return violations
