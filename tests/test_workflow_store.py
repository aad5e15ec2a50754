"""Tests for flowgate.workflow.store module.

Tests cover:
- Front matter splitting and joining
- History table updates
- MarkdownTaskStore loading from tasks/ and completed/
- save_state, set_breakpoint and set_skip_github write paths
- InMemoryTaskStore
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from flowgate.utils.errors import TaskNotFoundError, TaskRecordError
from flowgate.workflow.states import WorkflowState
from flowgate.workflow.store import (
    InMemoryTaskStore,
    MarkdownTaskStore,
    append_history_row,
    format_history_row,
    join_frontmatter,
    split_frontmatter,
)
from tests.helpers.tasks import make_task

FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


class TestFrontmatter:
    """Tests for split_frontmatter and join_frontmatter."""

    def test_split(self):
        meta, body = split_frontmatter("---\nid: T-1\npriority: low\n---\n# Title\n")

        assert meta == {"id": "T-1", "priority": "low"}
        assert body == "# Title\n"

    def test_split_keeps_leading_blank_line(self):
        _, body = split_frontmatter("---\nid: T-1\n---\n\n# Title\n")
        assert body == "\n# Title\n"

    def test_missing_block_raises(self):
        with pytest.raises(TaskRecordError, match="no front matter"):
            split_frontmatter("# Just a heading\n")

    def test_invalid_yaml_raises(self):
        with pytest.raises(TaskRecordError, match="Invalid YAML"):
            split_frontmatter("---\nid: [unclosed\n---\nbody")

    def test_non_mapping_raises(self):
        with pytest.raises(TaskRecordError, match="mapping"):
            split_frontmatter("---\n- a\n- b\n---\nbody")

    def test_join_then_split_preserves_content(self):
        meta = {"id": "T-1", "depends_on": ["A", "B"], "breakpoint": False}
        content = join_frontmatter(meta, "\n# Title\n")

        assert content.startswith("---\nid: T-1\n")
        assert split_frontmatter(content) == (meta, "\n# Title\n")


class TestHistory:
    """Tests for the History table helpers."""

    BODY = "# T\n\n## History\n\n| Date | Transition | Agent |\n|---|---|---|\n"

    def test_appends_after_last_row(self):
        body = append_history_row(self.BODY, "| row1 |")
        body = append_history_row(body, "| row2 |")

        lines = body.split("\n")
        assert lines[-3:] == ["| row1 |", "| row2 |", ""]

    def test_rows_stay_inside_section(self):
        body = self.BODY + "\n## Notes\n\ntext\n"
        updated = append_history_row(body, "| row |")

        assert updated.index("| row |") < updated.index("## Notes")

    def test_no_history_section(self):
        assert append_history_row("# T\n", "| row |") == "# T\n"

    def test_history_without_table(self):
        body = "## History\n\nnothing yet\n"
        assert append_history_row(body, "| row |") == body

    def test_format_history_row(self):
        row = format_history_row(FIXED_NOW, WorkflowState.DRAFT, WorkflowState.ANALYZING, "analyst")
        assert row == "| 2026-03-14 09:30 | DRAFT → ANALYZING | analyst |"

    def test_format_history_row_without_agent(self):
        row = format_history_row(FIXED_NOW, WorkflowState.PR_REVIEW, WorkflowState.DONE, None)
        assert row.endswith("| flowgate |")


class TestMarkdownTaskStoreLoad:
    """Tests for MarkdownTaskStore reads."""

    def test_load_all(self, backlog_dir, write_task):
        write_task("T-2", epic="core", priority="high", depends_on=["T-1"])
        write_task("T-1", epic="core", state="CODE_REVIEW")

        tasks = MarkdownTaskStore(backlog_dir).load_all()

        assert [t.id for t in tasks] == ["T-1", "T-2"]
        assert tasks[0].workflow_state is WorkflowState.CODE_REVIEW
        assert tasks[1].depends_on == ("T-1",)
        assert tasks[1].title == "Task T-2"

    def test_reads_completed_directory(self, backlog_dir, write_task):
        write_task("T-1", epic="core", state="DONE", completed=True)
        write_task("T-2", epic="core")

        tasks = MarkdownTaskStore(backlog_dir).load_all()

        assert {t.id: t.workflow_state for t in tasks} == {
            "T-1": WorkflowState.DONE,
            "T-2": WorkflowState.DRAFT,
        }

    def test_skips_underscore_files(self, backlog_dir, write_task):
        write_task("T-1")
        (backlog_dir / "tasks" / "E1" / "_template.md").write_text("not a task")

        assert [t.id for t in MarkdownTaskStore(backlog_dir).load_all()] == ["T-1"]

    def test_missing_backlog_is_empty(self, tmp_path):
        assert MarkdownTaskStore(tmp_path / "nowhere").load_all() == []

    def test_duplicate_id_raises(self, backlog_dir, write_task):
        write_task("T-1", epic="a")
        write_task("T-1", epic="b")

        with pytest.raises(TaskRecordError, match="Duplicate task id"):
            MarkdownTaskStore(backlog_dir).load_all()

    def test_bad_state_raises(self, backlog_dir, write_task):
        write_task("T-1", state="SHIPPING")

        with pytest.raises(TaskRecordError, match="Invalid workflow_state"):
            MarkdownTaskStore(backlog_dir).load_all()

    def test_file_without_front_matter_names_path(self, backlog_dir, write_task):
        write_task("T-1")
        broken = backlog_dir / "tasks" / "E1" / "T-9.md"
        broken.write_text("# no front matter\n")

        with pytest.raises(TaskRecordError, match="T-9.md"):
            MarkdownTaskStore(backlog_dir).load_all()

    def test_get(self, backlog_dir, write_task):
        write_task("T-1")
        assert MarkdownTaskStore(backlog_dir).get("T-1").id == "T-1"

    def test_get_missing_raises(self, backlog_dir):
        with pytest.raises(TaskNotFoundError):
            MarkdownTaskStore(backlog_dir).get("T-404")

    def test_epic_order_defaults_to_directory_names(self, backlog_dir, write_task):
        write_task("T-1", epic="beta")
        write_task("T-2", epic="alpha", state="DONE", completed=True)

        assert MarkdownTaskStore(backlog_dir).epic_order().epics == ["alpha", "beta"]

    def test_configured_epic_order(self, backlog_dir, write_task):
        write_task("T-1", epic="beta")
        store = MarkdownTaskStore(backlog_dir, epic_order=["beta", "alpha"])

        assert store.epic_order().epics == ["beta", "alpha"]


class TestMarkdownTaskStoreWrite:
    """Tests for MarkdownTaskStore writes."""

    def test_save_state_updates_front_matter(self, backlog_dir, write_task):
        path = write_task("T-1")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        task = store.save_state("T-1", WorkflowState.ANALYZING, agent="analyst")

        assert task.workflow_state is WorkflowState.ANALYZING
        meta, _ = split_frontmatter(path.read_text())
        assert meta["workflow_state"] == "ANALYZING"
        assert meta["assigned_agent"] == "analyst"
        assert meta["started_at"] == "2026-03-14T09:30:00+00:00"
        assert meta["updated_at"] == "2026-03-14T09:30:00+00:00"
        assert "completed_at" not in meta

    def test_save_state_appends_history_row(self, backlog_dir, write_task):
        path = write_task("T-1")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state("T-1", WorkflowState.ANALYZING, agent="analyst")
        store.save_state("T-1", WorkflowState.ANALYZED, agent="analyst")

        content = path.read_text()
        assert "| 2026-03-14 09:30 | DRAFT → ANALYZING | analyst |" in content
        assert "| 2026-03-14 09:30 | ANALYZING → ANALYZED | analyst |" in content
        assert content.index("DRAFT → ANALYZING") < content.index("ANALYZING → ANALYZED")

    def test_save_state_keeps_started_at(self, backlog_dir, write_task):
        path = write_task("T-1", extra="started_at: '2026-01-01T00:00:00+00:00'\n")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state("T-1", WorkflowState.ANALYZING)

        meta, _ = split_frontmatter(path.read_text())
        assert meta["started_at"] == "2026-01-01T00:00:00+00:00"

    def test_done_sets_completed_at(self, backlog_dir, write_task):
        path = write_task("T-1", state="PR_CREATED")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state("T-1", WorkflowState.DONE)

        meta, _ = split_frontmatter(path.read_text())
        assert meta["completed_at"] == "2026-03-14T09:30:00+00:00"

    def test_body_and_unknown_fields_preserved(self, backlog_dir, write_task):
        path = write_task("T-1", extra="estimate: 3\n")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state("T-1", WorkflowState.ANALYZING)

        meta, body = split_frontmatter(path.read_text())
        assert meta["estimate"] == 3
        assert body.startswith("\n# Task T-1\n\n## Description\n\nTask body.\n")

    def test_no_temp_files_left_behind(self, backlog_dir, write_task):
        path = write_task("T-1")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state("T-1", WorkflowState.ANALYZING)

        assert sorted(p.name for p in path.parent.iterdir()) == ["T-1.md"]

    def test_failed_write_leaves_file_intact(self, backlog_dir, write_task, monkeypatch):
        path = write_task("T-1")
        original = path.read_text()
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        def explode(self, target):
            raise OSError("disk full")

        monkeypatch.setattr(Path, "replace", explode)
        with pytest.raises(OSError, match="disk full"):
            store.save_state("T-1", WorkflowState.ANALYZING)

        assert path.read_text() == original
        assert sorted(p.name for p in path.parent.iterdir()) == ["T-1.md"]

    def test_set_breakpoint(self, backlog_dir, write_task):
        path = write_task("T-1")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        assert store.set_breakpoint("T-1", True).breakpoint is True
        assert split_frontmatter(path.read_text())[0]["breakpoint"] is True
        assert store.set_breakpoint("T-1", False).breakpoint is False

    def test_set_breakpoint_keeps_state(self, backlog_dir, write_task):
        write_task("T-1", state="QA_REVIEW")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        assert store.set_breakpoint("T-1", True).workflow_state is WorkflowState.QA_REVIEW

    def test_set_skip_github(self, backlog_dir, write_task):
        write_task("T-1")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        assert store.set_skip_github("T-1", True).skip_github is True

    def test_save_state_unknown_task_raises(self, backlog_dir):
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        with pytest.raises(TaskNotFoundError):
            store.save_state("T-404", WorkflowState.DONE)

    def test_write_ignores_malformed_record_elsewhere(self, backlog_dir, write_task):
        path = write_task("T-1")
        write_task("T-2", priority="whenever")
        (backlog_dir / "tasks" / "E1" / "broken.md").write_text("no front matter")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        assert store.set_breakpoint("T-1", True).breakpoint is True
        assert split_frontmatter(path.read_text())[0]["breakpoint"] is True

    def test_write_finds_record_by_id_not_filename(self, backlog_dir, write_task):
        path = write_task("T-1")
        renamed = path.with_name("login-form.md")
        path.rename(renamed)
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state("T-1", WorkflowState.ANALYZING)

        assert split_frontmatter(renamed.read_text())[0]["workflow_state"] == "ANALYZING"

    def test_save_state_from_state_overrides_history_row(self, backlog_dir, write_task):
        path = write_task("T-1", state="TESTS_REVISION_NEEDED")
        store = MarkdownTaskStore(backlog_dir, clock=fixed_clock)

        store.save_state(
            "T-1",
            WorkflowState.TESTS_REVISION_NEEDED,
            agent="developer",
            from_state=WorkflowState.IMPLEMENTING,
        )

        assert "IMPLEMENTING → TESTS_REVISION_NEEDED | developer |" in path.read_text()


class TestInMemoryTaskStore:
    """Tests for InMemoryTaskStore."""

    def test_save_state_records_history(self):
        store = InMemoryTaskStore([make_task("A")])

        store.save_state("A", WorkflowState.ANALYZING, agent="analyst")

        assert store.get("A").workflow_state is WorkflowState.ANALYZING
        assert store.get("A").assigned_agent == "analyst"
        assert store.history == [("A", WorkflowState.DRAFT, WorkflowState.ANALYZING, "analyst")]

    def test_duplicate_ids_rejected(self):
        with pytest.raises(TaskRecordError):
            InMemoryTaskStore([make_task("A"), make_task("A")])

    def test_get_missing_raises(self):
        with pytest.raises(TaskNotFoundError):
            InMemoryTaskStore([]).get("A")

    def test_epic_order_falls_back_to_names(self):
        store = InMemoryTaskStore([make_task("A", epic="b"), make_task("B", epic="a")])
        assert store.epic_order().epics == ["a", "b"]

    def test_flags(self):
        store = InMemoryTaskStore([make_task("A")])

        assert store.set_breakpoint("A", True).breakpoint
        assert store.set_skip_github("A", True).skip_github
