"""Tests for trellis.core.constraints: the four dependency rules."""

from __future__ import annotations

import pytest

from tests.factories import day, make_task
from trellis.core.constraints import (
    DEPENDENCY_TYPES,
    apply_child_constraints_to_parent,
    apply_parent_constraints,
    find_violations,
    validate_dependency_type,
    violation_delta,
)
from trellis.core.tasks import Dependency, EphemeralTask, Task


def _working(*tasks) -> dict[str, EphemeralTask]:
    return {t.id: EphemeralTask.from_task(t) for t in tasks}


class TestDependencyTypes:
    def test_exactly_four_types(self) -> None:
        assert DEPENDENCY_TYPES == {"FS", "SS", "FF", "SF"}

    def test_validate(self) -> None:
        for dep_type in DEPENDENCY_TYPES:
            assert validate_dependency_type(dep_type) is True
        assert validate_dependency_type("fs") is False
        assert validate_dependency_type("") is False


class TestViolationDelta:
    """parent spans day 3..day 6; child spans day 1..day 4."""

    parent = make_task("p", day(3), day(6))
    child = make_task("c", day(1), day(4))

    @pytest.mark.parametrize(
        ("dep_type", "expected"),
        [
            ("FS", day(6) - day(1)),  # cs >= pe
            ("SS", day(3) - day(1)),  # cs >= ps
            ("FF", day(6) - day(4)),  # ce >= pe
            ("SF", 0),  # ce >= ps holds
        ],
    )
    def test_each_type(self, dep_type: str, expected: int) -> None:
        assert violation_delta(dep_type, self.child, self.parent) == expected

    def test_unknown_type_contributes_nothing(self) -> None:
        assert violation_delta("XX", self.child, self.parent) == 0

    def test_unresolved_span_contributes_nothing(self) -> None:
        group = make_task("g", None, None, is_group=True)
        assert violation_delta("FS", self.child, group) == 0


class TestForwardRule:
    def test_fs_shifts_child_preserving_duration(self) -> None:
        working = _working(make_task("a", day(1), day(3)), make_task("b", day(2), day(5), ("a", "FS")))
        assert apply_parent_constraints(working["b"], working) is True
        assert (working["b"].start, working["b"].end) == (day(3), day(6))

    def test_satisfied_constraint_is_noop(self) -> None:
        working = _working(make_task("a", day(1), day(3)), make_task("b", day(4), day(5), ("a", "FS")))
        assert apply_parent_constraints(working["b"], working) is False
        assert working["b"].start == day(4)

    @pytest.mark.parametrize(
        ("dep_type", "expected"),
        [
            ("SS", (day(2), day(3))),
            ("FF", (day(3), day(4))),
            ("SF", (day(1), day(2))),
        ],
    )
    def test_other_types(self, dep_type: str, expected: tuple[int, int]) -> None:
        # parent 2..4, child 1..2
        working = _working(make_task("p", day(2), day(4)), make_task("c", day(1), day(2), ("p", dep_type)))
        apply_parent_constraints(working["c"], working)
        assert (working["c"].start, working["c"].end) == expected

    def test_most_restrictive_parent_wins(self) -> None:
        working = _working(
            make_task("p1", day(1), day(3)),
            make_task("p2", day(1), day(7)),
            make_task("c", day(1), day(2), ("p1", "FS"), ("p2", "FS")),
        )
        apply_parent_constraints(working["c"], working)
        assert working["c"].start == day(7)

    def test_missing_parent_ignored(self) -> None:
        working = _working(make_task("c", day(1), day(2), ("ghost", "FS")))
        assert apply_parent_constraints(working["c"], working) is False

    def test_lag_not_consulted(self) -> None:
        parent = make_task("a", day(1), day(3))
        child = Task(id="b", start=day(3), end=day(4), dependencies=(Dependency("a", "FS", lag=2 * 86_400_000),))
        working = _working(parent, child)
        assert apply_parent_constraints(working["b"], working) is False


class TestReverseRule:
    def test_fs_pulls_parent_earlier(self) -> None:
        working = _working(make_task("a", day(2), day(5)), make_task("b", day(3), day(4), ("a", "FS")))
        assert apply_child_constraints_to_parent(working["a"], working) is True
        assert working["a"].end == day(3)
        assert working["a"].end - working["a"].start == day(5) - day(2)

    def test_parent_absorbs_largest_shift(self) -> None:
        working = _working(
            make_task("p", day(10), day(12)),
            make_task("c1", day(11), day(13), ("p", "FS")),
            make_task("c2", day(8), day(9), ("p", "FS")),
        )
        apply_child_constraints_to_parent(working["p"], working)
        assert working["p"].end == day(8)
        assert working["p"].start == day(6)

    def test_no_children_no_change(self) -> None:
        working = _working(make_task("p", day(1), day(2)))
        assert apply_child_constraints_to_parent(working["p"], working) is False


class TestFindViolations:
    def test_reports_each_broken_dependency(self) -> None:
        tasks = [
            make_task("a", day(1), day(3)),
            make_task("b", day(2), day(5), ("a", "FS")),
            make_task("c", day(6), day(7), ("b", "FS")),
            make_task("d", day(1), day(2), ("ghost", "SS")),
        ]
        assert find_violations(tasks) == [
            {"task_id": "b", "target_id": "a", "type": "FS", "delta_ms": day(3) - day(2)}
        ]

    def test_clean_schedule(self) -> None:
        tasks = [make_task("a", day(1), day(3)), make_task("b", day(3), day(5), ("a", "FS"))]
        assert find_violations(tasks) == []
