"""Task snapshot builders for scheduler and runner tests."""

from flowgate.workflow.states import WorkflowState
from flowgate.workflow.tasks import Priority, Task, TaskType


def make_task(
    task_id: str,
    epic: str = "E1",
    state: WorkflowState = WorkflowState.DRAFT,
    priority: Priority = Priority.MEDIUM,
    depends_on: tuple[str, ...] = (),
    breakpoint: bool = False,
    task_type: TaskType | None = None,
    skip_github: bool = False,
) -> Task:
    """Build a Task snapshot with sensible defaults."""
    return Task(
        id=task_id,
        epic=epic,
        workflow_state=state,
        priority=priority,
        depends_on=depends_on,
        breakpoint=breakpoint,
        task_type=task_type,
        skip_github=skip_github,
    )


def done(task_id: str, epic: str = "E1", **kwargs) -> Task:
    """A task already in DONE."""
    return make_task(task_id, epic=epic, state=WorkflowState.DONE, **kwargs)
