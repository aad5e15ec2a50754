"""Task selection for FLOWGATE.

The Scheduler composes the dependency resolver, the epic tracker and an
ordering policy into one deterministic choice per scheduling pass:

- ready_tasks: tasks that may be dispatched at all
- OrderingPolicy: how ready tasks are ranked (epic barrier by default)
- Scheduler.next_task / concurrent_batch: what to dispatch now
- Scheduler.explain: why a given task is not being dispatched
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from flowgate.workflow.dependencies import (
    can_start,
    completed_task_ids,
    unmet_dependencies,
)
from flowgate.workflow.epics import EpicOrder
from flowgate.workflow.tasks import Task


def ready_tasks(all_tasks: Sequence[Task]) -> list[Task]:
    """Tasks that can start, are not on a breakpoint and are not DONE.

    Input order is preserved; ranking is the ordering policy's job.
    """
    completed = completed_task_ids(all_tasks)
    return [
        task
        for task in all_tasks
        if not task.breakpoint and not task.is_done and can_start(task, completed)
    ]


class ExclusionReason(Enum):
    """Why a task is not part of the current dispatch batch."""

    DONE = "done"
    BREAKPOINT = "breakpoint"
    UNMET_DEPENDENCY = "unmet_dependency"
    EPIC_BARRIER = "epic_barrier"


@dataclass(frozen=True)
class BlockedTask:
    """A task that is not dispatchable now, with the reason."""

    task: Task
    reason: ExclusionReason
    unmet: tuple[str, ...] = field(default=())


class OrderingPolicy(Protocol):
    """Ranks a ready set. Implementations must be deterministic."""

    def order(self, ready: Sequence[Task]) -> list[Task]: ...


class EpicBarrierOrdering:
    """Epic definition order first, then priority (critical first).

    Later epics always rank behind every ready task of an earlier epic,
    whatever their priority. Exact ties keep input order.
    """

    def __init__(self, epic_order: EpicOrder | None = None) -> None:
        self.epic_order = epic_order or EpicOrder()

    def order(self, ready: Sequence[Task]) -> list[Task]:
        return sorted(ready, key=lambda t: (self.epic_order.key(t.epic), t.priority.rank))


class PriorityOrdering:
    """Priority first across all epics, epic order only as a tie-break.

    Lifts the epic barrier; intended for backlogs whose epics are
    labels rather than project phases.
    """

    def __init__(self, epic_order: EpicOrder | None = None) -> None:
        self.epic_order = epic_order or EpicOrder()

    def order(self, ready: Sequence[Task]) -> list[Task]:
        return sorted(ready, key=lambda t: (t.priority.rank, self.epic_order.key(t.epic)))


class Scheduler:
    """Picks what to dispatch from a snapshot of all tasks.

    The scheduler holds no task state. Every method takes the full task
    list and recomputes eligibility from it.
    """

    def __init__(
        self,
        epic_order: EpicOrder | None = None,
        ordering: OrderingPolicy | None = None,
    ) -> None:
        self.epic_order = epic_order or EpicOrder()
        self.ordering = ordering or EpicBarrierOrdering(self.epic_order)

    def order(self, all_tasks: Sequence[Task]) -> list[Task]:
        """Ready tasks ranked by the ordering policy."""
        return self.ordering.order(ready_tasks(all_tasks))

    def next_task(self, all_tasks: Sequence[Task]) -> Task | None:
        """Head of the ranked ready list, or None when nothing is ready."""
        ranked = self.order(all_tasks)
        return ranked[0] if ranked else None

    def concurrent_batch(self, all_tasks: Sequence[Task], limit: int | None = None) -> list[Task]:
        """Ready tasks that may run side by side: the head's epic only.

        Never crosses an epic boundary. Callers must still re-check
        ``can_start`` against a fresh snapshot before each dispatch.

        Raises:
            ValueError: If ``limit`` is given and below 1.
        """
        if limit is not None and limit < 1:
            raise ValueError(f"Batch limit must be at least 1, got {limit}")
        ranked = self.order(all_tasks)
        if not ranked:
            return []
        head_epic = ranked[0].epic
        batch = [task for task in ranked if task.epic == head_epic]
        return batch if limit is None else batch[:limit]

    def explain(self, task: Task, all_tasks: Sequence[Task]) -> ExclusionReason | None:
        """Give the single reason ``task`` is not in the current batch.

        Checked in order: DONE, breakpoint, unmet dependency, then epic
        barrier (ready, but ranked behind the ready work of an earlier
        epic). Returns None when the task belongs to the current batch.
        """
        if task.is_done:
            return ExclusionReason.DONE
        if task.breakpoint:
            return ExclusionReason.BREAKPOINT
        if not can_start(task, completed_task_ids(all_tasks)):
            return ExclusionReason.UNMET_DEPENDENCY
        batch_ids = {t.id for t in self.concurrent_batch(all_tasks)}
        if task.id in batch_ids:
            return None
        return ExclusionReason.EPIC_BARRIER

    def blocked(self, all_tasks: Sequence[Task]) -> list[BlockedTask]:
        """Every unfinished task outside the current batch, with its reason."""
        completed = completed_task_ids(all_tasks)
        batch_ids = {t.id for t in self.concurrent_batch(all_tasks)}
        result: list[BlockedTask] = []
        for task in all_tasks:
            if task.is_done or task.id in batch_ids:
                continue
            if task.breakpoint:
                result.append(BlockedTask(task=task, reason=ExclusionReason.BREAKPOINT))
            elif not can_start(task, completed):
                unmet = tuple(unmet_dependencies(task, completed))
                result.append(
                    BlockedTask(task=task, reason=ExclusionReason.UNMET_DEPENDENCY, unmet=unmet)
                )
            else:
                result.append(BlockedTask(task=task, reason=ExclusionReason.EPIC_BARRIER))
        return result


__all__ = [
    "ready_tasks",
    "ExclusionReason",
    "BlockedTask",
    "OrderingPolicy",
    "EpicBarrierOrdering",
    "PriorityOrdering",
    "Scheduler",
]
