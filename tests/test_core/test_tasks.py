"""Tests for trellis.core.tasks: records and their serialization."""

from __future__ import annotations

import json

import pytest

from tests.factories import day, make_task
from trellis.core.tasks import (
    Dependency,
    EphemeralTask,
    TaskValidationError,
    load_tasks,
    merge_ephemeral,
    serialize_tasks,
    task_from_dict,
)


class TestTaskFromDict:
    def test_leaf_task(self) -> None:
        task = task_from_dict(
            {"id": 1, "name": "Task 1", "start": day(1), "end": day(10), "dependencies": [{"id": 2, "type": "FS"}]}
        )
        assert task.id == "1"
        assert task.name == "Task 1"
        assert (task.start, task.end) == (day(1), day(10))
        assert task.dependencies == (Dependency("2", "FS"),)
        assert task.pinned_start and task.pinned_end

    def test_target_id_key_accepted(self) -> None:
        task = task_from_dict({"id": "b", "start": 0, "end": 1, "dependencies": [{"targetId": "a", "type": "SS"}]})
        assert task.dependencies[0].target_id == "a"

    def test_group_sides_pinned_only_when_present(self) -> None:
        group = task_from_dict({"id": "g", "isGroup": True, "start": day(1)})
        assert group.is_group
        assert group.pinned_start is True
        assert group.pinned_end is False
        assert group.end is None

    def test_lag_carried(self) -> None:
        task = task_from_dict(
            {"id": "c", "start": 0, "end": 1, "dependencies": [{"id": "d", "type": "SS", "lag": 5}]}
        )
        assert task.dependencies[0].lag == 5

    def test_missing_id(self) -> None:
        with pytest.raises(TaskValidationError, match="no 'id'"):
            task_from_dict({"start": 0, "end": 1})

    def test_leaf_without_end(self) -> None:
        with pytest.raises(TaskValidationError, match="both start and end"):
            task_from_dict({"id": "a", "start": 0})

    def test_leaf_end_before_start(self) -> None:
        with pytest.raises(TaskValidationError, match="before start"):
            task_from_dict({"id": "a", "start": 10, "end": 0})

    def test_unknown_dependency_type(self) -> None:
        with pytest.raises(TaskValidationError, match="invalid dependency type"):
            task_from_dict({"id": "a", "start": 0, "end": 1, "dependencies": [{"id": "b", "type": "XX"}]})

    def test_non_integer_instant(self) -> None:
        with pytest.raises(TaskValidationError, match="integer"):
            task_from_dict({"id": "a", "start": "2021-06-01", "end": 1})


class TestLoadAndSerialize:
    def test_duplicate_ids_rejected(self) -> None:
        with pytest.raises(TaskValidationError, match="Duplicate"):
            load_tasks([{"id": "a", "start": 0, "end": 1}, {"id": "a", "start": 0, "end": 1}])

    def test_serialize_omits_unpinned_sides(self) -> None:
        tasks = load_tasks(
            [
                {"id": "g", "isGroup": True},
                {"id": "a", "parentId": "g", "start": 0, "end": 10, "dependencies": [{"id": "b", "type": "FF", "lag": 2}]},
                {"id": "b", "start": 0, "end": 10},
            ]
        )
        doc = json.loads(serialize_tasks(tasks))
        assert doc["tasks"][0] == {"id": "g", "isGroup": True}
        assert doc["tasks"][1] == {
            "id": "a",
            "parentId": "g",
            "start": 0,
            "end": 10,
            "dependencies": [{"id": "b", "type": "FF", "lag": 2}],
        }

    def test_reload_is_stable(self) -> None:
        raw = [{"id": "g", "isGroup": True, "end": 50}, {"id": "a", "parentId": "g", "start": 0, "end": 10}]
        first = load_tasks(raw)
        second = load_tasks(json.loads(serialize_tasks(first))["tasks"])
        assert first == second


class TestEphemeralTask:
    def test_dependencies_shared_by_reference(self) -> None:
        task = make_task("b", day(2), day(5), ("a", "FS"))
        copy = EphemeralTask.from_task(task)
        assert copy.dependencies is task.dependencies

    def test_mutating_copy_leaves_source(self) -> None:
        task = make_task("a", day(1), day(3))
        copy = EphemeralTask.from_task(task)
        copy.shift(day(2) - day(1))
        assert (task.start, task.end) == (day(1), day(3))
        assert (copy.start, copy.end) == (day(2), day(4))

    def test_committed_group_keeps_only_pinned_sides(self) -> None:
        group = make_task("g", day(1), None, is_group=True)
        copy = EphemeralTask.from_task(group)
        copy.end = day(8)
        committed = copy.to_committed_task()
        assert committed.start == day(1)
        assert committed.end is None
        assert committed.pinned_end is False

    def test_working_view_keeps_derived_values(self) -> None:
        group = make_task("g", None, None, is_group=True)
        copy = EphemeralTask.from_task(group)
        copy.start, copy.end = day(2), day(8)
        view = copy.to_task()
        assert (view.start, view.end) == (day(2), day(8))
        assert not view.pinned_start and not view.pinned_end


class TestMergeEphemeral:
    def test_canonical_order_and_overlay(self) -> None:
        a = make_task("a", day(1), day(3))
        b = make_task("b", day(2), day(5))
        c = make_task("c", day(4), day(6))
        working = EphemeralTask.from_task(b)
        working.shift(day(2) - day(1))
        merged = merge_ephemeral([a, b, c], {"b": working})
        assert [t.id for t in merged] == ["a", "b", "c"]
        assert merged[0] is a
        assert merged[1].start == day(3)
        assert merged[2] is c
