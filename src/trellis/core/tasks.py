"""Task and dependency records, ephemeral copies, and (de)serialization."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from trellis.core.constraints import DEPENDENCY_TYPES


class TaskValidationError(ValueError):
    """Raised when task data cannot be loaded into a consistent task list."""


# ---------------------------------------------------------------------------
# Canonical records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dependency:
    """A typed edge from the declaring (child) task to ``target_id`` (its parent).

    ``lag`` is carried through load and save but no constraint rule reads it.
    """

    target_id: str
    type: str
    lag: int | None = None

    def to_dict(self) -> dict:
        d: dict = {"id": self.target_id, "type": self.type}
        if self.lag is not None:
            d["lag"] = self.lag
        return d


@dataclass(frozen=True)
class Task:
    """A canonical task record.

    ``start``/``end`` are millisecond instants.  ``pinned_start`` and
    ``pinned_end`` record whether each side was set explicitly; only group
    tasks may have unpinned sides, whose values are derived from the group's
    descendants (and are ``None`` until derived).
    """

    id: str
    start: int | None
    end: int | None
    name: str = ""
    parent_id: str | None = None
    is_group: bool = False
    dependencies: tuple[Dependency, ...] = ()
    pinned_start: bool = True
    pinned_end: bool = True

    @property
    def duration(self) -> int | None:
        if self.start is None or self.end is None:
            return None
        return self.end - self.start

    def to_dict(self) -> dict:
        """Serialize for storage.  Unpinned sides are never written."""
        d: dict = {"id": self.id}
        if self.name:
            d["name"] = self.name
        if self.pinned_start and self.start is not None:
            d["start"] = self.start
        if self.pinned_end and self.end is not None:
            d["end"] = self.end
        if self.parent_id is not None:
            d["parentId"] = self.parent_id
        if self.is_group:
            d["isGroup"] = True
        if self.dependencies:
            d["dependencies"] = [dep.to_dict() for dep in self.dependencies]
        return d


# ---------------------------------------------------------------------------
# Ephemeral (copy-on-write) records
# ---------------------------------------------------------------------------


@dataclass
class EphemeralTask:
    """Mutable working copy of a task for the duration of one edit gesture.

    The dependency tuple is shared with the canonical record; only the
    instants are owned by the copy.
    """

    id: str
    start: int | None
    end: int | None
    parent_id: str | None
    is_group: bool
    dependencies: tuple[Dependency, ...]
    pinned_start: bool
    pinned_end: bool
    source: Task = field(repr=False)

    @classmethod
    def from_task(cls, task: Task) -> EphemeralTask:
        return cls(
            id=task.id,
            start=task.start,
            end=task.end,
            parent_id=task.parent_id,
            is_group=task.is_group,
            dependencies=task.dependencies,
            pinned_start=task.pinned_start and task.start is not None,
            pinned_end=task.pinned_end and task.end is not None,
            source=task,
        )

    def has_span(self) -> bool:
        return self.start is not None and self.end is not None

    def shift(self, delta: int) -> None:
        """Move both edges by *delta* milliseconds, preserving duration."""
        self.start += delta
        self.end += delta

    def to_task(self) -> Task:
        """Return a canonical record carrying the current working values."""
        return replace(
            self.source,
            start=self.start,
            end=self.end,
            pinned_start=self.pinned_start,
            pinned_end=self.pinned_end,
        )

    def to_committed_task(self) -> Task:
        """Return the record to persist: groups keep only their pinned sides."""
        if not self.is_group:
            return replace(self.source, start=self.start, end=self.end)
        return replace(
            self.source,
            start=self.start if self.pinned_start else None,
            end=self.end if self.pinned_end else None,
            pinned_start=self.pinned_start,
            pinned_end=self.pinned_end,
        )


EphemeralMap = dict[str, EphemeralTask]


def merge_ephemeral(tasks: Sequence[Task], ephemeral: Mapping[str, EphemeralTask]) -> list[Task]:
    """Return *tasks* in canonical order with ephemeral values laid over them."""
    return [ephemeral[t.id].to_task() if t.id in ephemeral else t for t in tasks]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _coerce_instant(task_id: object, key: str, value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TaskValidationError(
            f"Task {task_id!r}: '{key}' must be an integer millisecond instant, got {value!r}"
        )
    return value


def dependency_from_dict(task_id: object, raw: Mapping) -> Dependency:
    target = raw.get("id", raw.get("targetId"))
    if target is None:
        raise TaskValidationError(f"Task {task_id!r}: dependency has no target id")
    dep_type = raw.get("type")
    if dep_type not in DEPENDENCY_TYPES:
        sorted_types = ", ".join(sorted(DEPENDENCY_TYPES))
        raise TaskValidationError(
            f"Task {task_id!r}: invalid dependency type {dep_type!r}. Valid types: {sorted_types}."
        )
    return Dependency(target_id=str(target), type=dep_type, lag=raw.get("lag"))


def task_from_dict(raw: Mapping) -> Task:
    """Build a :class:`Task` from its stored dict form.

    A side is pinned iff its key is present with a non-null value.

    Raises:
        TaskValidationError: On malformed records.
    """
    if raw.get("id") is None:
        raise TaskValidationError("Task record has no 'id'")
    task_id = str(raw["id"])
    start = _coerce_instant(task_id, "start", raw.get("start"))
    end = _coerce_instant(task_id, "end", raw.get("end"))
    is_group = bool(raw.get("isGroup", False))

    if not is_group:
        if start is None or end is None:
            raise TaskValidationError(f"Task {task_id!r}: non-group tasks need both start and end")
        if end < start:
            raise TaskValidationError(f"Task {task_id!r}: end is before start")

    parent_id = raw.get("parentId")
    return Task(
        id=task_id,
        start=start,
        end=end,
        name=str(raw.get("name") or ""),
        parent_id=str(parent_id) if parent_id is not None else None,
        is_group=is_group,
        dependencies=tuple(
            dependency_from_dict(task_id, dep) for dep in raw.get("dependencies") or []
        ),
        pinned_start=start is not None,
        pinned_end=end is not None,
    )


def load_tasks(records: Iterable[Mapping]) -> list[Task]:
    """Build a task list from stored dicts, rejecting duplicate ids."""
    tasks: list[Task] = []
    seen: set[str] = set()
    for raw in records:
        task = task_from_dict(raw)
        if task.id in seen:
            raise TaskValidationError(f"Duplicate task id {task.id!r}")
        seen.add(task.id)
        tasks.append(task)
    return tasks


def serialize_tasks(tasks: Iterable[Task]) -> str:
    """Serialize a task list as the canonical ``{"tasks": [...]}`` JSON document."""
    payload = {"tasks": [t.to_dict() for t in tasks]}
    return json.dumps(payload, sort_keys=True, indent=2) + "\n"
