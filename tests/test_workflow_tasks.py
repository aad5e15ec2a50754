"""Tests for flowgate.workflow.tasks module."""

from pathlib import Path

import pytest

from flowgate.utils.errors import TaskNotFoundError, TaskRecordError
from flowgate.workflow.states import WorkflowState
from flowgate.workflow.tasks import (
    Priority,
    Task,
    TaskType,
    dependents_of,
    find_task,
    tasks_by_state,
)
from tests.helpers.tasks import make_task


class TestPriority:
    """Tests for the Priority enum."""

    def test_rank_order(self):
        ranks = [p.rank for p in (Priority.CRITICAL, Priority.HIGH, Priority.MEDIUM, Priority.LOW)]
        assert ranks == [0, 1, 2, 3]


class TestTaskFromFrontmatter:
    """Tests for Task.from_frontmatter."""

    def test_minimal_record(self):
        task = Task.from_frontmatter(
            {"id": "T-1", "epic": "core", "workflow_state": "DRAFT", "priority": "high"}
        )

        assert task.id == "T-1"
        assert task.epic == "core"
        assert task.workflow_state is WorkflowState.DRAFT
        assert task.priority is Priority.HIGH
        assert task.depends_on == ()
        assert task.breakpoint is False
        assert task.task_type is None

    def test_full_record(self):
        meta = {
            "id": "T-2",
            "title": "Login form",
            "epic": "auth",
            "workflow_state": "code_review",
            "priority": "Critical",
            "depends_on": ["T-1"],
            "blocks": "T-3",
            "breakpoint": True,
            "task_type": "backend",
            "skip_github": "yes",
            "assigned_agent": "developer",
            "labels": ["ui", "auth"],
            "created_at": "2026-01-02",
        }

        task = Task.from_frontmatter(meta, body="# Body", path=Path("x.md"))

        assert task.title == "Login form"
        assert task.workflow_state is WorkflowState.CODE_REVIEW
        assert task.priority is Priority.CRITICAL
        assert task.depends_on == ("T-1",)
        assert task.blocks == ("T-3",)
        assert task.breakpoint is True
        assert task.task_type is TaskType.BACKEND
        assert task.is_backend_only
        assert task.skip_github is True
        assert task.assigned_agent == "developer"
        assert task.labels == ("ui", "auth")
        assert task.created_at == "2026-01-02"
        assert task.body == "# Body"
        assert task.path == Path("x.md")

    def test_epic_falls_back_to_directory(self):
        task = Task.from_frontmatter(
            {"id": "T-1", "workflow_state": "DRAFT", "priority": "low"}, default_epic="setup"
        )

        assert task.epic == "setup"

    def test_missing_id_raises(self):
        with pytest.raises(TaskRecordError, match="no id"):
            Task.from_frontmatter({"workflow_state": "DRAFT", "priority": "low", "epic": "e"})

    def test_missing_epic_raises(self):
        with pytest.raises(TaskRecordError, match="no epic"):
            Task.from_frontmatter({"id": "T-1", "workflow_state": "DRAFT", "priority": "low"})

    def test_unknown_state_raises(self):
        """An unrecognized state is an error, never silently defaulted."""
        with pytest.raises(TaskRecordError, match=r"\[T-1\] Invalid workflow_state"):
            Task.from_frontmatter(
                {"id": "T-1", "epic": "e", "workflow_state": "SHIPPING", "priority": "low"}
            )

    def test_missing_priority_raises(self):
        with pytest.raises(TaskRecordError, match="Missing priority"):
            Task.from_frontmatter({"id": "T-1", "epic": "e", "workflow_state": "DRAFT"})

    def test_unknown_priority_raises(self):
        with pytest.raises(TaskRecordError, match="Valid options"):
            Task.from_frontmatter(
                {"id": "T-1", "epic": "e", "workflow_state": "DRAFT", "priority": "urgent"}
            )

    def test_numeric_id_is_stringified(self):
        task = Task.from_frontmatter(
            {"id": 42, "epic": "e", "workflow_state": "DRAFT", "priority": "low"}
        )

        assert task.id == "42"


class TestTaskHelpers:
    """Tests for the module-level task helpers."""

    def test_with_state_returns_copy(self):
        task = make_task("A")
        moved = task.with_state(WorkflowState.ANALYZING)

        assert moved.workflow_state is WorkflowState.ANALYZING
        assert task.workflow_state is WorkflowState.DRAFT

    def test_is_done(self):
        assert make_task("A", state=WorkflowState.DONE).is_done
        assert not make_task("A").is_done

    def test_find_task(self):
        tasks = [make_task("A"), make_task("B")]
        assert find_task(tasks, "B").id == "B"

    def test_find_task_missing_raises(self):
        with pytest.raises(TaskNotFoundError, match="Task not found: Z"):
            find_task([make_task("A")], "Z")

    def test_tasks_by_state(self):
        tasks = [
            make_task("A"),
            make_task("B", state=WorkflowState.DONE),
            make_task("C"),
        ]

        grouped = tasks_by_state(tasks)

        assert [t.id for t in grouped[WorkflowState.DRAFT]] == ["A", "C"]
        assert [t.id for t in grouped[WorkflowState.DONE]] == ["B"]

    def test_dependents_of(self):
        tasks = [make_task("A"), make_task("B", depends_on=("A",)), make_task("C")]
        assert [t.id for t in dependents_of(tasks, "A")] == ["B"]
