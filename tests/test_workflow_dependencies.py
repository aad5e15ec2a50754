"""Tests for flowgate.workflow.dependencies and epics modules."""

from flowgate.workflow.dependencies import (
    can_start,
    completed_task_ids,
    find_dependency_cycles,
    find_unknown_dependencies,
    unmet_dependencies,
)
from flowgate.workflow.epics import (
    EpicOrder,
    completed_epics,
    current_epic,
    group_by_epic,
    is_epic_complete,
)
from flowgate.workflow.states import WorkflowState
from tests.helpers.tasks import done, make_task


class TestCanStart:
    """Tests for can_start."""

    def test_no_dependencies(self):
        assert can_start(make_task("A"), set())

    def test_done_task_never_starts(self):
        assert not can_start(done("A"), {"A"})

    def test_all_dependencies_done(self):
        task = make_task("C", depends_on=("A", "B"))
        assert can_start(task, {"A", "B"})

    def test_partial_dependencies(self):
        task = make_task("C", depends_on=("A", "B"))
        assert not can_start(task, {"A"})

    def test_cross_epic_dependency(self):
        """Completion is global, not limited to the task's epic."""
        tasks = [done("A", epic="E1"), make_task("B", epic="E2", depends_on=("A",))]
        assert can_start(tasks[1], completed_task_ids(tasks))

    def test_unknown_dependency_never_satisfied(self):
        assert not can_start(make_task("A", depends_on=("GHOST",)), {"B"})

    def test_unmet_dependencies_keep_declaration_order(self):
        task = make_task("D", depends_on=("C", "A", "B"))
        assert unmet_dependencies(task, {"A"}) == ["C", "B"]


class TestDependencyDiagnostics:
    """Tests for cycle and unknown-id detection."""

    def test_no_cycles(self):
        tasks = [make_task("A"), make_task("B", depends_on=("A",))]
        assert find_dependency_cycles(tasks) == []

    def test_two_task_cycle(self):
        tasks = [make_task("B", depends_on=("A",)), make_task("A", depends_on=("B",))]
        assert find_dependency_cycles(tasks) == [["A", "B"]]

    def test_three_task_cycle_reported_once(self):
        tasks = [
            make_task("C", depends_on=("A",)),
            make_task("A", depends_on=("B",)),
            make_task("B", depends_on=("C",)),
        ]

        assert find_dependency_cycles(tasks) == [["A", "B", "C"]]

    def test_self_dependency(self):
        assert find_dependency_cycles([make_task("A", depends_on=("A",))]) == [["A"]]

    def test_done_tasks_break_cycles(self):
        tasks = [done("A", depends_on=("B",)), make_task("B", depends_on=("A",))]
        assert find_dependency_cycles(tasks) == []

    def test_unknown_dependencies(self):
        tasks = [make_task("A", depends_on=("X", "B")), make_task("B")]
        assert find_unknown_dependencies(tasks) == {"A": ["X"]}


class TestEpicOrder:
    """Tests for EpicOrder."""

    def test_configured_epics_first(self):
        order = EpicOrder(["setup", "core"])
        assert order.ordered(["zeta", "core", "alpha", "setup"]) == [
            "setup",
            "core",
            "alpha",
            "zeta",
        ]

    def test_duplicates_ignored(self):
        assert EpicOrder(["a", "b", "a"]).epics == ["a", "b"]

    def test_from_tasks_sorts_by_name(self):
        tasks = [make_task("1", epic="beta"), make_task("2", epic="alpha")]
        assert EpicOrder.from_tasks(tasks).epics == ["alpha", "beta"]


class TestEpicTracking:
    """Tests for epic completion helpers."""

    def test_group_by_epic(self):
        tasks = [make_task("A", epic="E1"), make_task("B", epic="E2"), make_task("C", epic="E1")]
        grouped = group_by_epic(tasks)

        assert [t.id for t in grouped["E1"]] == ["A", "C"]
        assert [t.id for t in grouped["E2"]] == ["B"]

    def test_empty_epic_is_not_complete(self):
        assert not is_epic_complete([])

    def test_epic_complete_when_all_done(self):
        assert is_epic_complete([done("A"), done("B")])
        assert not is_epic_complete([done("A"), make_task("B")])

    def test_completed_epics(self):
        tasks = [done("A", epic="E1"), done("B", epic="E2"), make_task("C", epic="E2")]
        assert completed_epics(tasks) == {"E1"}

    def test_current_epic(self):
        tasks = [
            done("A", epic="E1"),
            make_task("B", epic="E2"),
            make_task("C", epic="E3"),
        ]

        assert current_epic(tasks, EpicOrder(["E1", "E2", "E3"])) == "E2"

    def test_current_epic_none_when_all_done(self):
        assert current_epic([done("A")], EpicOrder()) is None

    def test_in_flight_task_keeps_epic_open(self):
        tasks = [done("A"), make_task("B", state=WorkflowState.CODE_REVIEW)]
        assert current_epic(tasks, EpicOrder(["E1"])) == "E1"
