"""Adjacency maps, grouping lookups, and the affected closure of an edit.

All structures are derived from a flat task list by explicit traversal and
are rebuilt whenever the list changes; nothing here is updated in place.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from typing import NamedTuple

from trellis.core.tasks import Task


class Edge(NamedTuple):
    """An adjacency entry: the neighbouring task id and the dependency type."""

    id: str
    type: str


AdjacencyMap = dict[str, list[Edge]]


# ---------------------------------------------------------------------------
# Dependency adjacency
# ---------------------------------------------------------------------------


def build_downstream_map(tasks: Iterable[Task]) -> AdjacencyMap:
    """Map each parent id to the children that depend on it.

    Duplicate dependencies produce duplicate edges.  Targets are not checked
    for existence here; consumers skip ids they cannot resolve.
    """
    downstream: AdjacencyMap = {}
    for child in tasks:
        for dep in child.dependencies:
            downstream.setdefault(dep.target_id, []).append(Edge(child.id, dep.type))
    return downstream


def build_upstream_map(tasks: Iterable[Task]) -> AdjacencyMap:
    """Map each child id to the parents it depends on."""
    upstream: AdjacencyMap = {}
    for child in tasks:
        for dep in child.dependencies:
            upstream.setdefault(child.id, []).append(Edge(dep.target_id, dep.type))
    return upstream


def _collect(start_id: str, adjacency: Mapping[str, list[Edge]]) -> set[str]:
    visited: set[str] = set()
    queue: deque[str] = deque([start_id])
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        for edge in adjacency.get(current, ()):
            if edge.id not in visited:
                queue.append(edge.id)
    return visited


def collect_downstream(start_id: str, downstream: Mapping[str, list[Edge]]) -> set[str]:
    """Return *start_id* plus every transitive dependent."""
    return _collect(start_id, downstream)


def collect_upstream(start_id: str, upstream: Mapping[str, list[Edge]]) -> set[str]:
    """Return *start_id* plus every transitive dependency."""
    return _collect(start_id, upstream)


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def build_children_map(tasks: Iterable[Task]) -> dict[str, list[str]]:
    """Map each group id to its direct children, in canonical order.

    Children whose ``parent_id`` does not name a task in *tasks* are left
    out, as are tasks naming themselves as parent.
    """
    tasks = list(tasks)
    known = {t.id for t in tasks}
    children: dict[str, list[str]] = {}
    for task in tasks:
        if task.parent_id is None or task.parent_id not in known or task.parent_id == task.id:
            continue
        children.setdefault(task.parent_id, []).append(task.id)
    return children


def ancestors(task_id: str, by_id: Mapping[str, Task]) -> list[str]:
    """Return the ``parent_id`` chain of *task_id*, nearest first.

    A chain that loops back on itself is cut at the first repeat.
    """
    chain: list[str] = []
    seen = {task_id}
    task = by_id.get(task_id)
    while task is not None and task.parent_id is not None:
        parent_id = task.parent_id
        if parent_id in seen or parent_id not in by_id:
            break
        chain.append(parent_id)
        seen.add(parent_id)
        task = by_id[parent_id]
    return chain


def collect_subtree(root_id: str, children: Mapping[str, list[str]]) -> set[str]:
    """Return *root_id* and every descendant reachable through *children*."""
    found: set[str] = set()
    stack = [root_id]
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(children.get(current, ()))
    return found


# ---------------------------------------------------------------------------
# Affected closure
# ---------------------------------------------------------------------------


def affected_closure(task_id: str, tasks: Iterable[Task]) -> set[str]:
    """Return the ids whose instants may change when *task_id* is edited.

    This is every transitive dependent and dependency of *task_id* (and the
    task itself), widened by the full subtree of every group that encloses
    any of them (or that is one of them) so that group spans can be
    recomputed from all descendants.  A group pulled in this way can change
    span, so its own dependents and dependencies are collected in turn,
    until nothing new is reached.
    Ids that do not name a task are dropped.
    """
    tasks = list(tasks)
    by_id = {t.id: t for t in tasks}
    if task_id not in by_id:
        return set()

    downstream = build_downstream_map(tasks)
    upstream = build_upstream_map(tasks)
    children = build_children_map(tasks)

    closure: set[str] = set()
    expanded: set[str] = set()
    placed: set[str] = set()
    pending = [task_id]
    while pending:
        current = pending.pop()
        if current in expanded:
            continue
        expanded.add(current)
        reached = collect_downstream(current, downstream) | collect_upstream(current, upstream)
        reached &= by_id.keys()
        for member in reached - placed:
            placed.add(member)
            roots = ancestors(member, by_id)
            if by_id[member].is_group:
                roots.append(member)
            for root in roots:
                closure |= collect_subtree(root, children)
                pending.append(root)
        closure |= reached
    return closure
