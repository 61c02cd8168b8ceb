"""Summary-group span aggregation."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from trellis.core.config import DEFAULT_MAX_GROUP_PASSES
from trellis.core.graph import build_children_map, collect_subtree
from trellis.core.propagation import PropagationReport
from trellis.core.tasks import EphemeralTask, Task

logger = logging.getLogger(__name__)


def subtree_span(
    group_id: str,
    ephemeral: Mapping[str, EphemeralTask],
    children: Mapping[str, list[str]],
) -> tuple[int | None, int | None]:
    """Return ``(min start, max end)`` over every descendant of *group_id*.

    Nested groups contribute their own current values as well as their
    descendants'.  Sides with no values below the group come back ``None``.
    """
    min_start: int | None = None
    max_end: int | None = None
    for member_id in collect_subtree(group_id, children):
        if member_id == group_id:
            continue
        member = ephemeral.get(member_id)
        if member is None:
            continue
        if member.start is not None and (min_start is None or member.start < min_start):
            min_start = member.start
        if member.end is not None and (max_end is None or member.end > max_end):
            max_end = member.end
    return min_start, max_end


def aggregate_groups(
    ephemeral: Mapping[str, EphemeralTask],
    max_passes: int = DEFAULT_MAX_GROUP_PASSES,
) -> PropagationReport:
    """Recompute the unpinned sides of every group in *ephemeral*.

    Passes repeat over all groups until one pass changes nothing, since a
    nested group's new span can move its ancestors.  Pinned sides are never
    touched.
    """
    groups = [t for t in ephemeral.values() if t.is_group]
    if not groups:
        return PropagationReport(converged=True, steps=0)

    children = build_children_map(t.source for t in ephemeral.values())
    passes = 0
    while passes < max_passes:
        passes += 1
        changed = False
        for group in groups:
            min_start, max_end = subtree_span(group.id, ephemeral, children)
            if not group.pinned_start and group.start != min_start:
                group.start = min_start
                changed = True
            if not group.pinned_end and group.end != max_end:
                group.end = max_end
                changed = True
        if not changed:
            return PropagationReport(converged=True, steps=passes)

    logger.warning("Group aggregation did not stabilise within %d passes", max_passes)
    return PropagationReport(converged=False, steps=passes)


def recompute_group_spans(
    tasks: Sequence[Task],
    max_passes: int = DEFAULT_MAX_GROUP_PASSES,
) -> list[Task]:
    """Return *tasks* with every group's unpinned sides derived from its subtree.

    Stateless and usable outside an edit session (e.g. right after a task
    list is loaded).  Derived sides stay marked unpinned, so applying this
    twice gives the same list.
    """
    ephemeral = {t.id: EphemeralTask.from_task(t) for t in tasks}
    aggregate_groups(ephemeral, max_passes)
    return [ephemeral[t.id].to_task() for t in tasks]
