"""Edit sessions: the copy-on-write working set for one drag gesture.

A session reads the canonical task list once, at :func:`begin_edit`, and
writes it once, at :func:`commit_edit`.  In between, every
:func:`apply_edit` mutates only the session's ephemeral copies of the
tasks in the edited task's affected closure.

Sessions are single-threaded and not reentrant.  The caller serializes
gestures; at most one session should be open per task list.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from trellis.core.config import EngineConfig, resolve_config, validate_config
from trellis.core.graph import affected_closure, build_downstream_map, build_upstream_map
from trellis.core.groups import aggregate_groups
from trellis.core.ids import generate_session_id
from trellis.core.propagation import (
    PropagationReport,
    clamp_task_to_constraints,
    propagate_two_way,
)
from trellis.core.tasks import EphemeralMap, EphemeralTask, Task, merge_ephemeral
from trellis.core.timeutil import snap

logger = logging.getLogger(__name__)

EDGE_KINDS: frozenset[str] = frozenset({"whole", "start", "end"})

# Clamp mode used by the enforced policy for each gesture edge.
CLAMP_MODE_FOR_EDGE: dict[str, str] = {"whole": "move", "start": "left", "end": "right"}

RenderCallback = Callable[[list[Task]], None]
CommitCallback = Callable[[list[Task]], None]


class SessionStateError(RuntimeError):
    """Raised when a session is used out of sequence (e.g. applied after commit)."""


class EditSession:
    """Ephemeral working set for one in-progress edit of ``task_id``.

    Attributes:
        id: ULID-based handle (``sess_...``).
        status: ``open``, ``committed`` or ``cancelled``.
        converged: ``False`` once any propagation or aggregation pass in
            this session hit its iteration cap.
        last_report: Report of the most recent :meth:`apply`.
    """

    def __init__(
        self,
        tasks: Sequence[Task],
        task_id: str,
        config: EngineConfig | None = None,
        *,
        on_render: RenderCallback | None = None,
        on_commit: CommitCallback | None = None,
    ) -> None:
        problems = validate_config(dict(config or {}))
        if problems:
            raise ValueError("; ".join(problems))
        self.id = generate_session_id()
        self.task_id = task_id
        self.config = resolve_config(dict(config or {}))
        self.on_render = on_render
        self.on_commit = on_commit
        self.status = "open"
        self.converged = True
        self.last_report: PropagationReport | None = None

        self._tasks = list(tasks)
        closure = affected_closure(task_id, self._tasks)
        if not closure:
            raise SessionStateError(f"Cannot begin edit: task {task_id!r} not found")

        self._downstream = build_downstream_map(self._tasks)
        self._upstream = build_upstream_map(self._tasks)
        self.ephemeral: EphemeralMap = {
            t.id: EphemeralTask.from_task(t) for t in self._tasks if t.id in closure
        }
        self._record(aggregate_groups(self.ephemeral, self.config["max_group_passes"]))
        logger.debug(
            "Session %s opened on %s with %d working tasks",
            self.id,
            task_id,
            len(self.ephemeral),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _require_open(self, action: str) -> None:
        if self.status != "open":
            raise SessionStateError(f"Cannot {action}: session {self.id} is {self.status}")

    def _record(self, report: PropagationReport) -> None:
        self.last_report = report
        if not report.converged:
            self.converged = False

    def merged(self) -> list[Task]:
        """Return the canonical list with the current working values laid over it."""
        return merge_ephemeral(self._tasks, self.ephemeral)

    def apply(self, proposed: int, edge: str) -> list[Task]:
        """Move the edited task's *edge* to *proposed* and restore all constraints.

        *proposed* is snapped first when snapping is enabled.  For ``whole``
        it is the new start and the interval keeps its duration.  Returns the
        merged task list, which is also passed to ``on_render``.

        Under the free policy every working task is held to the minimum
        duration.  Under the enforced policy only the dragged task is, and
        that wins over its clamp: a dependent it then overlaps is left for
        that task's own edit.

        Raises:
            SessionStateError: If the session is no longer open.
            ValueError: If *edge* is not ``whole``, ``start`` or ``end``.
        """
        self._require_open("apply edit")
        if edge not in EDGE_KINDS:
            raise ValueError(f"Invalid edge kind: '{edge}'. Expected one of: end, start, whole.")

        cfg = self.config
        me = self.ephemeral[self.task_id]
        instant = snap(proposed, cfg["snap_enabled"], cfg["snap_increment_ms"])
        self._move_edge(me, instant, edge)
        self._extend_short(me)

        if cfg["enforce_constraints"]:
            report = clamp_task_to_constraints(
                me,
                self.ephemeral,
                self._downstream,
                CLAMP_MODE_FOR_EDGE[edge],
                cfg["max_propagation_steps"],
            )
            # Only the dragged task changes; its minimum duration outranks the clamp.
            self._extend_short(me)
        else:
            report = self._propagate(self.task_id)
            for extended_id in self._enforce_min_duration():
                report &= self._propagate(extended_id)

        report &= self._settle_groups()
        self._record(report)

        merged = self.merged()
        if self.on_render is not None:
            self.on_render(merged)
        return merged

    def commit(self) -> list[Task]:
        """Write working values back and return the new canonical list.

        Groups keep only their pinned sides; derived sides are stored unset
        so they are always recomputed from live descendants.
        """
        self._require_open("commit")
        committed = [
            self.ephemeral[t.id].to_committed_task() if t.id in self.ephemeral else t
            for t in self._tasks
        ]
        self.status = "committed"
        self.ephemeral = {}
        logger.debug("Session %s committed", self.id)
        if self.on_commit is not None:
            self.on_commit(committed)
        return committed

    def cancel(self) -> None:
        """Discard the working set; the canonical list is untouched."""
        self._require_open("cancel")
        self.status = "cancelled"
        self.ephemeral = {}
        logger.debug("Session %s cancelled", self.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _move_edge(self, me: EphemeralTask, instant: int, edge: str) -> None:
        if edge == "whole":
            if me.has_span():
                me.shift(instant - me.start)
            else:
                me.start = me.end = instant
            me.pinned_start = me.pinned_end = True
        elif edge == "start":
            me.start = instant
            me.pinned_start = True
        else:
            me.end = instant
            me.pinned_end = True

    def _extend_short(self, task: EphemeralTask) -> bool:
        """Extend *task*'s end to honour the minimum duration.  Groups are exempt."""
        if task.is_group or not task.has_span():
            return False
        floor = task.start + self.config["min_duration_ms"]
        if task.end < floor:
            task.end = floor
            return True
        return False

    def _enforce_min_duration(self) -> list[str]:
        return [t.id for t in self.ephemeral.values() if self._extend_short(t)]

    def _settle_groups(self) -> PropagationReport:
        """Recompute group spans and, in free mode, propagate from moved groups.

        A group whose span changed in aggregation is propagated from like any
        moved task, which can move more members; rounds repeat until
        aggregation changes nothing, up to ``max_group_passes`` rounds.
        """
        cfg = self.config
        groups = [t for t in self.ephemeral.values() if t.is_group]
        report = PropagationReport(converged=True, steps=0)
        for _ in range(cfg["max_group_passes"]):
            before = {g.id: (g.start, g.end) for g in groups}
            report &= aggregate_groups(self.ephemeral, cfg["max_group_passes"])
            moved = [g.id for g in groups if (g.start, g.end) != before[g.id]]
            if not moved or cfg["enforce_constraints"]:
                return report
            for group_id in moved:
                report &= self._propagate(group_id)

        report &= aggregate_groups(self.ephemeral, cfg["max_group_passes"])
        logger.warning(
            "Group spans around %s did not settle within %d rounds",
            self.task_id,
            cfg["max_group_passes"],
        )
        return report & PropagationReport(converged=False, steps=0)

    def _propagate(self, changed_id: str) -> PropagationReport:
        return propagate_two_way(
            changed_id,
            self.ephemeral,
            self._downstream,
            self._upstream,
            self.config["max_propagation_steps"],
        )


# ---------------------------------------------------------------------------
# Functional API
# ---------------------------------------------------------------------------


def begin_edit(
    tasks: Sequence[Task],
    task_id: str,
    config: EngineConfig | None = None,
    *,
    on_render: RenderCallback | None = None,
    on_commit: CommitCallback | None = None,
) -> EditSession:
    """Open an edit session on *task_id* over the canonical list *tasks*."""
    return EditSession(tasks, task_id, config, on_render=on_render, on_commit=on_commit)


def apply_edit(session: EditSession, proposed: int, edge: str) -> list[Task]:
    """Apply one gesture step and return the merged list for rendering."""
    return session.apply(proposed, edge)


def commit_edit(session: EditSession) -> list[Task]:
    """Commit *session* and return the new canonical task list."""
    return session.commit()


def cancel_edit(session: EditSession) -> None:
    """Discard *session* without touching canonical storage."""
    session.cancel()
