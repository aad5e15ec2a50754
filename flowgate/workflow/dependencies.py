"""Dependency resolution for FLOWGATE.

Pure functions over a task snapshot. Nothing here caches a graph: every
call recomputes from the list it is given, so a stale view cannot leak
between scheduling passes.
"""

from collections.abc import Iterable, Sequence

from flowgate.workflow.tasks import Task


def completed_task_ids(tasks: Iterable[Task]) -> set[str]:
    """Ids of all tasks in the DONE state."""
    return {task.id for task in tasks if task.is_done}


def can_start(task: Task, completed_ids: set[str] | frozenset[str]) -> bool:
    """Decide whether ``task`` may be dispatched.

    A DONE task never starts again. A task with no dependencies can always
    start. Otherwise every dependency must be in ``completed_ids``, which
    is global and not limited to the task's own epic.
    """
    if task.is_done:
        return False
    if not task.depends_on:
        return True
    return all(dep in completed_ids for dep in task.depends_on)


def unmet_dependencies(task: Task, completed_ids: set[str] | frozenset[str]) -> list[str]:
    """Dependencies of ``task`` that are not yet DONE, in declaration order."""
    return [dep for dep in task.depends_on if dep not in completed_ids]


def find_unknown_dependencies(tasks: Sequence[Task]) -> dict[str, list[str]]:
    """Map task id to the dependency ids that match no task in the snapshot.

    Such a task can never start; the scheduler does not flag it, so the
    CLI and the runner report it instead.
    """
    known = {task.id for task in tasks}
    unknown: dict[str, list[str]] = {}
    for task in tasks:
        missing = [dep for dep in task.depends_on if dep not in known]
        if missing:
            unknown[task.id] = missing
    return unknown


def find_dependency_cycles(tasks: Sequence[Task]) -> list[list[str]]:
    """Return the dependency cycles among tasks that are not DONE.

    Each cycle is reported once, as a list of task ids starting at its
    smallest id and following depends_on edges. Self-dependencies count
    as a cycle of one. Edges to DONE or unknown tasks are ignored since
    they cannot deadlock.
    """
    pending = {task.id: task for task in tasks if not task.is_done}
    graph = {
        task_id: [dep for dep in task.depends_on if dep in pending]
        for task_id, task in pending.items()
    }

    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()
    visited: set[str] = set()

    def visit(node: str, stack: list[str], on_stack: set[str]) -> None:
        stack.append(node)
        on_stack.add(node)
        for dep in graph[node]:
            if dep in on_stack:
                cycle = stack[stack.index(dep) :]
                pivot = cycle.index(min(cycle))
                canonical = tuple(cycle[pivot:] + cycle[:pivot])
                if canonical not in seen:
                    seen.add(canonical)
                    cycles.append(list(canonical))
            elif dep not in visited:
                visit(dep, stack, on_stack)
        on_stack.discard(node)
        stack.pop()
        visited.add(node)

    for task_id in sorted(graph):
        if task_id not in visited:
            visit(task_id, [], set())

    return cycles


__all__ = [
    "completed_task_ids",
    "can_start",
    "unmet_dependencies",
    "find_unknown_dependencies",
    "find_dependency_cycles",
]
