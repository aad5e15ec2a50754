"""Workflow core for FLOWGATE.

This package contains the phase state table, dependency resolution, epic
tracking, task selection and task persistence. The driving loop lives in
flowgate.workflow.runner and is imported from there directly.
"""

from flowgate.workflow.context import needs_fresh_context
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
from flowgate.workflow.scheduler import (
    BlockedTask,
    EpicBarrierOrdering,
    ExclusionReason,
    OrderingPolicy,
    PriorityOrdering,
    Scheduler,
    ready_tasks,
)
from flowgate.workflow.states import (
    HAPPY_PATH,
    INITIAL_STATE,
    Action,
    StateCategory,
    WorkflowState,
    get_next_state,
    get_required_action,
    is_review_state,
    is_terminal,
    state_category,
)
from flowgate.workflow.store import InMemoryTaskStore, MarkdownTaskStore, TaskStore
from flowgate.workflow.tasks import Priority, Task, TaskType
from flowgate.workflow.transitions import (
    DispatchPlan,
    PhaseOutcome,
    apply_outcome,
    plan_dispatch,
)

__all__ = [
    # States
    "WorkflowState",
    "StateCategory",
    "Action",
    "INITIAL_STATE",
    "HAPPY_PATH",
    "get_next_state",
    "get_required_action",
    "is_review_state",
    "is_terminal",
    "state_category",
    # Context
    "needs_fresh_context",
    # Tasks
    "Task",
    "Priority",
    "TaskType",
    # Dependencies
    "can_start",
    "completed_task_ids",
    "unmet_dependencies",
    "find_dependency_cycles",
    "find_unknown_dependencies",
    # Epics
    "EpicOrder",
    "group_by_epic",
    "is_epic_complete",
    "completed_epics",
    "current_epic",
    # Scheduler
    "ready_tasks",
    "Scheduler",
    "OrderingPolicy",
    "EpicBarrierOrdering",
    "PriorityOrdering",
    "ExclusionReason",
    "BlockedTask",
    # Transitions
    "PhaseOutcome",
    "DispatchPlan",
    "plan_dispatch",
    "apply_outcome",
    # Store
    "TaskStore",
    "MarkdownTaskStore",
    "InMemoryTaskStore",
]
