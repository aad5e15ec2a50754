"""Task records for FLOWGATE.

This module provides the immutable Task snapshot the scheduler works on,
the Priority and TaskType enums, and the conversion from task-file front
matter into a Task.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from flowgate.utils.errors import TaskNotFoundError, TaskRecordError
from flowgate.workflow.states import WorkflowState


class Priority(Enum):
    """Task priority, most urgent first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank: 0 for critical up to 3 for low."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class TaskType(Enum):
    """Which layers of the product a task touches."""

    FRONTEND = "frontend"
    BACKEND = "backend"
    FULLSTACK = "fullstack"


@dataclass(frozen=True)
class Task:
    """A snapshot of one task as read from the backlog.

    The scheduler only ever sees snapshots; the store is the one place
    that writes a new workflow_state.

    Attributes:
        id: Unique, stable task identifier
        epic: Identifier of the owning epic
        workflow_state: Current phase
        priority: Scheduling priority within an epic
        depends_on: Ids of tasks that must be DONE before this one starts
        breakpoint: Manual hold; a held task is never selected
        title: Human-readable title
        task_type: frontend / backend / fullstack, if declared
        skip_github: Stop before the commit-and-PR phase
        assigned_agent: Agent role that last worked on the task
        labels: Free-form labels
        blocks: Ids of tasks this one blocks (informational)
        created_at: Creation timestamp from the record
        updated_at: Last update timestamp
        started_at: Timestamp of the first dispatch
        completed_at: Timestamp of reaching DONE
        path: Backing file, when loaded from disk
        body: Markdown body following the front matter
    """

    id: str
    epic: str
    workflow_state: WorkflowState
    priority: Priority = Priority.MEDIUM
    depends_on: tuple[str, ...] = ()
    breakpoint: bool = False
    title: str = ""
    task_type: TaskType | None = None
    skip_github: bool = False
    assigned_agent: str | None = None
    labels: tuple[str, ...] = ()
    blocks: tuple[str, ...] = ()
    created_at: str | None = None
    updated_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    path: Path | None = field(default=None, compare=False)
    body: str = field(default="", compare=False, repr=False)

    @property
    def is_done(self) -> bool:
        return self.workflow_state is WorkflowState.DONE

    @property
    def is_backend_only(self) -> bool:
        return self.task_type is TaskType.BACKEND

    def with_state(self, state: WorkflowState) -> Task:
        """Return a copy in another workflow state."""
        return replace(self, workflow_state=state)

    @classmethod
    def from_frontmatter(
        cls,
        meta: Mapping[str, Any],
        *,
        body: str = "",
        path: Path | None = None,
        default_epic: str | None = None,
    ) -> Task:
        """Build a Task from parsed front matter.

        Args:
            meta: Mapping parsed from the YAML front matter
            body: Markdown body of the task file
            path: Backing file path
            default_epic: Epic to use when the record has none (the
                epic directory the file lives in)

        Raises:
            TaskRecordError: If a required field is missing or a
                workflow_state / priority / task_type value is unknown.
        """
        task_id = _optional_str(meta.get("id"))
        if not task_id:
            raise TaskRecordError(f"Task record has no id ({path or 'unknown file'})")

        epic = _optional_str(meta.get("epic")) or default_epic
        if not epic:
            raise TaskRecordError("Task record has no epic", task_id=task_id)

        return cls(
            id=task_id,
            epic=epic,
            workflow_state=_parse_enum(
                WorkflowState, meta.get("workflow_state"), "workflow_state", task_id, upper=True
            ),
            priority=_parse_enum(Priority, meta.get("priority"), "priority", task_id),
            depends_on=_as_tuple(meta.get("depends_on")),
            breakpoint=_as_bool(meta.get("breakpoint")),
            title=_optional_str(meta.get("title")) or "",
            task_type=(
                _parse_enum(TaskType, meta.get("task_type"), "task_type", task_id)
                if meta.get("task_type")
                else None
            ),
            skip_github=_as_bool(meta.get("skip_github")),
            assigned_agent=_optional_str(meta.get("assigned_agent")),
            labels=_as_tuple(meta.get("labels")),
            blocks=_as_tuple(meta.get("blocks")),
            created_at=_optional_str(meta.get("created_at")),
            updated_at=_optional_str(meta.get("updated_at")),
            started_at=_optional_str(meta.get("started_at")),
            completed_at=_optional_str(meta.get("completed_at")),
            path=path,
            body=body,
        )


def _parse_enum(
    enum_cls: type[Enum], value: Any, field_name: str, task_id: str, upper: bool = False
) -> Any:
    if value is None:
        raise TaskRecordError(f"Missing {field_name}", task_id=task_id)
    text = str(value).strip()
    text = text.upper() if upper else text.lower()
    try:
        return enum_cls(text)
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)  # type: ignore[attr-defined]
        raise TaskRecordError(
            f"Invalid {field_name} {value!r}. Valid options: {valid}", task_id=task_id
        ) from None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes")


def find_task(tasks: Iterable[Task], task_id: str) -> Task:
    """Return the task with ``task_id``.

    Raises:
        TaskNotFoundError: If no task has that id.
    """
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(task_id)


def tasks_by_state(tasks: Iterable[Task]) -> dict[WorkflowState, list[Task]]:
    """Group tasks by workflow state, keeping input order within a group."""
    grouped: dict[WorkflowState, list[Task]] = {}
    for task in tasks:
        grouped.setdefault(task.workflow_state, []).append(task)
    return grouped


def dependents_of(tasks: Iterable[Task], task_id: str) -> list[Task]:
    """Tasks that list ``task_id`` in their depends_on."""
    return [t for t in tasks if task_id in t.depends_on]


__all__ = [
    "Priority",
    "TaskType",
    "Task",
    "find_task",
    "tasks_by_state",
    "dependents_of",
]
