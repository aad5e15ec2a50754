"""Task persistence for FLOWGATE.

Task records are Markdown files with a YAML front matter block, laid out
by epic:

    <backlog>/tasks/<epic>/<task>.md
    <backlog>/completed/<epic>/<task>.md

Files whose name starts with "_" (templates, epic notes) are ignored.

``save_state`` is the only path that writes ``workflow_state``. Every
write re-reads the file, updates the front matter and replaces the file
atomically, so a scheduling pass never observes a half-written record.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import yaml

from flowgate.utils.errors import TaskNotFoundError, TaskRecordError
from flowgate.utils.files import atomic_write_text
from flowgate.utils.logging import log_flag, log_message, log_transition
from flowgate.workflow.epics import EpicOrder
from flowgate.workflow.states import WorkflowState
from flowgate.workflow.tasks import Task, find_task

FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)(.*)\Z", re.DOTALL)
HISTORY_HEADING = "## History"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStore(Protocol):
    """Read access to the task snapshot plus the narrow write interface."""

    def load_all(self) -> list[Task]: ...

    def get(self, task_id: str) -> Task: ...

    def epic_order(self) -> EpicOrder: ...

    def save_state(
        self,
        task_id: str,
        new_state: WorkflowState,
        *,
        agent: str | None = None,
        reason: str = "",
        from_state: WorkflowState | None = None,
    ) -> Task: ...

    def set_breakpoint(self, task_id: str, enabled: bool) -> Task: ...

    def set_skip_github(self, task_id: str, enabled: bool) -> Task: ...


def split_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a task file into its front matter mapping and body.

    Raises:
        TaskRecordError: If the file has no front matter or it is not a
            YAML mapping.
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        raise TaskRecordError("Task file has no front matter block")
    try:
        meta = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise TaskRecordError(f"Invalid YAML front matter: {e}") from e
    if not isinstance(meta, dict):
        raise TaskRecordError("Front matter must be a mapping")
    return meta, match.group(2)


def join_frontmatter(meta: dict[str, Any], body: str) -> str:
    """Serialize front matter and body back into task file content."""
    dumped = yaml.safe_dump(meta, sort_keys=False, default_flow_style=False, allow_unicode=True)
    return f"---\n{dumped}---\n{body}"


def append_history_row(body: str, row: str) -> str:
    """Append ``row`` to the table under the "## History" heading.

    The body is returned unchanged when it has no History section or the
    section has no table header yet.
    """
    lines = body.split("\n")
    try:
        start = next(i for i, line in enumerate(lines) if line.strip() == HISTORY_HEADING)
    except StopIteration:
        return body

    i = start + 1
    while i < len(lines) and not lines[i].strip():
        i += 1
    table_start = i
    while i < len(lines) and lines[i].lstrip().startswith("|"):
        i += 1
    # Header and separator rows are required
    if i - table_start < 2:
        return body

    lines.insert(i, row)
    return "\n".join(lines)


def format_history_row(
    when: datetime, from_state: WorkflowState, to_state: WorkflowState, agent: str | None
) -> str:
    stamp = when.strftime("%Y-%m-%d %H:%M")
    return f"| {stamp} | {from_state.value} → {to_state.value} | {agent or 'flowgate'} |"


class MarkdownTaskStore:
    """Task store backed by Markdown files with YAML front matter.

    Attributes:
        root: Backlog directory containing tasks/ and completed/
    """

    TASKS_DIR = "tasks"
    COMPLETED_DIR = "completed"

    def __init__(
        self,
        root: Path,
        epic_order: list[str] | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self.root = Path(root)
        self._configured_order = list(epic_order or [])
        self._clock = clock
        self._lock = threading.Lock()

    def _epic_dirs(self) -> Iterator[Path]:
        for base in (self.root / self.TASKS_DIR, self.root / self.COMPLETED_DIR):
            if not base.is_dir():
                continue
            yield from sorted(p for p in base.iterdir() if p.is_dir())

    def _task_files(self) -> Iterator[Path]:
        for epic_dir in self._epic_dirs():
            for path in sorted(epic_dir.glob("*.md")):
                if not path.name.startswith("_"):
                    yield path

    def _read(self, path: Path) -> tuple[dict[str, Any], str, Task]:
        try:
            meta, body = split_frontmatter(path.read_text(encoding="utf-8"))
        except TaskRecordError as e:
            raise TaskRecordError(f"{path}: {e}") from e
        task = Task.from_frontmatter(meta, body=body, path=path, default_epic=path.parent.name)
        return meta, body, task

    def load_all(self) -> list[Task]:
        """Load every task, sorted by (epic, id).

        Raises:
            TaskRecordError: If a record is malformed or an id is duplicated.
        """
        tasks: dict[str, Task] = {}
        for path in self._task_files():
            _, _, task = self._read(path)
            if task.id in tasks:
                raise TaskRecordError(
                    f"Duplicate task id in {path} and {tasks[task.id].path}", task_id=task.id
                )
            tasks[task.id] = task
        log_message(f"Loaded {len(tasks)} tasks from {self.root}")
        return sorted(tasks.values(), key=lambda t: (t.epic, t.id))

    def get(self, task_id: str) -> Task:
        """Load a single task by id.

        Raises:
            TaskNotFoundError: If no record has that id.
        """
        return find_task(self.load_all(), task_id)

    def epic_order(self) -> EpicOrder:
        """Configured epic order, or epic directory names sorted by name."""
        if self._configured_order:
            return EpicOrder(self._configured_order)
        return EpicOrder(sorted({p.name for p in self._epic_dirs()}))

    def _locate(self, task_id: str) -> Path:
        """Find the file holding ``task_id`` without validating every record.

        ``<task_id>.md`` is tried first; other files are only read for their
        ``id`` field. Records whose front matter cannot be parsed are not
        this task and are passed over.

        Raises:
            TaskNotFoundError: If no record has that id.
        """
        files = list(self._task_files())
        named = [p for p in files if p.stem == task_id]
        for path in named + [p for p in files if p.stem != task_id]:
            try:
                meta, _ = split_frontmatter(path.read_text(encoding="utf-8"))
            except TaskRecordError:
                if path.stem == task_id:
                    raise
                continue
            if str(meta.get("id", "")).strip() == task_id:
                return path
        raise TaskNotFoundError(task_id)

    def _update(self, task_id: str, mutate: Callable[[dict[str, Any], str, Task], str]) -> Task:
        with self._lock:
            path = self._locate(task_id)
            meta, body, current = self._read(path)
            body = mutate(meta, body, current)
            meta["updated_at"] = self._clock().isoformat(timespec="seconds")
            atomic_write_text(path, join_frontmatter(meta, body))
            return self._read(path)[2]

    def save_state(
        self,
        task_id: str,
        new_state: WorkflowState,
        *,
        agent: str | None = None,
        reason: str = "",
        from_state: WorkflowState | None = None,
    ) -> Task:
        """Persist a new workflow_state for one task.

        Also stamps started_at on the first saved transition, completed_at
        on reaching DONE, records the agent and appends a row to the
        task's History table when it has one. ``from_state`` overrides the
        state shown on the left of that row, for a change already made to
        the file by someone else.
        """
        now = self._clock()
        previous: list[WorkflowState] = []

        def mutate(meta: dict[str, Any], body: str, current: Task) -> str:
            old_state = from_state or current.workflow_state
            previous.append(old_state)
            meta["workflow_state"] = new_state.value
            if agent:
                meta["assigned_agent"] = agent
            if not meta.get("started_at"):
                meta["started_at"] = now.isoformat(timespec="seconds")
            if new_state is WorkflowState.DONE:
                meta["completed_at"] = now.isoformat(timespec="seconds")
            return append_history_row(body, format_history_row(now, old_state, new_state, agent))

        task = self._update(task_id, mutate)
        log_transition(task_id, previous[0].value, new_state.value, reason)
        return task

    def set_breakpoint(self, task_id: str, enabled: bool) -> Task:
        """Set or clear the manual hold on a task."""

        def mutate(meta: dict[str, Any], body: str, current: Task) -> str:
            meta["breakpoint"] = enabled
            return body

        task = self._update(task_id, mutate)
        log_flag(task_id, "breakpoint", enabled)
        return task

    def set_skip_github(self, task_id: str, enabled: bool) -> Task:
        """Mark a task to stop before the commit-and-PR phase."""

        def mutate(meta: dict[str, Any], body: str, current: Task) -> str:
            meta["skip_github"] = enabled
            return body

        task = self._update(task_id, mutate)
        log_flag(task_id, "skip_github", enabled)
        return task


class InMemoryTaskStore:
    """Task store kept in memory, for embedding and tests.

    Attributes:
        history: (task_id, from_state, to_state, agent) per saved transition
    """

    def __init__(self, tasks: list[Task], epic_order: list[str] | None = None) -> None:
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            if task.id in self._tasks:
                raise TaskRecordError("Duplicate task id", task_id=task.id)
            self._tasks[task.id] = task
        self._epic_order = list(epic_order or [])
        self._lock = threading.Lock()
        self.history: list[tuple[str, WorkflowState, WorkflowState, str | None]] = []

    def load_all(self) -> list[Task]:
        with self._lock:
            return list(self._tasks.values())

    def get(self, task_id: str) -> Task:
        with self._lock:
            if task_id not in self._tasks:
                raise TaskNotFoundError(task_id)
            return self._tasks[task_id]

    def epic_order(self) -> EpicOrder:
        if self._epic_order:
            return EpicOrder(self._epic_order)
        return EpicOrder.from_tasks(self._tasks.values())

    def save_state(
        self,
        task_id: str,
        new_state: WorkflowState,
        *,
        agent: str | None = None,
        reason: str = "",
        from_state: WorkflowState | None = None,
    ) -> Task:
        old = self.get(task_id)
        previous = from_state or old.workflow_state
        updated = replace(
            old,
            workflow_state=new_state,
            assigned_agent=agent or old.assigned_agent,
        )
        with self._lock:
            self._tasks[task_id] = updated
            self.history.append((task_id, previous, new_state, agent))
        log_transition(task_id, previous.value, new_state.value, reason)
        return updated

    def set_breakpoint(self, task_id: str, enabled: bool) -> Task:
        updated = replace(self.get(task_id), breakpoint=enabled)
        with self._lock:
            self._tasks[task_id] = updated
        return updated

    def set_skip_github(self, task_id: str, enabled: bool) -> Task:
        updated = replace(self.get(task_id), skip_github=enabled)
        with self._lock:
            self._tasks[task_id] = updated
        return updated


__all__ = [
    "TaskStore",
    "MarkdownTaskStore",
    "InMemoryTaskStore",
    "split_frontmatter",
    "join_frontmatter",
    "append_history_row",
    "format_history_row",
]
