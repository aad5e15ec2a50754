"""Epic tracking for FLOWGATE.

Epics are never stored: membership comes from each task's ``epic`` field
and completion is recomputed from the snapshot on every call.
"""

from collections.abc import Iterable, Sequence

from flowgate.workflow.tasks import Task


class EpicOrder:
    """Definition order of epics.

    Epics listed explicitly come first, in the given order. Epics that
    appear in the backlog but not in the list sort after them by name,
    so a newly added epic never jumps ahead of a planned one.
    """

    def __init__(self, epics: Iterable[str] = ()) -> None:
        self._epics: list[str] = []
        for epic in epics:
            if epic not in self._epics:
                self._epics.append(epic)
        self._index = {epic: i for i, epic in enumerate(self._epics)}

    @property
    def epics(self) -> list[str]:
        return list(self._epics)

    def key(self, epic: str) -> tuple[int, str]:
        """Sort key for an epic id."""
        return (self._index.get(epic, len(self._epics)), epic)

    def ordered(self, epics: Iterable[str]) -> list[str]:
        return sorted(set(epics), key=self.key)

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "EpicOrder":
        """Order epics by name, for backlogs without an explicit order."""
        return cls(sorted({task.epic for task in tasks}))

    def __repr__(self) -> str:
        return f"EpicOrder({self._epics!r})"


def group_by_epic(tasks: Iterable[Task]) -> dict[str, list[Task]]:
    """Group tasks by epic, keeping input order within each epic."""
    grouped: dict[str, list[Task]] = {}
    for task in tasks:
        grouped.setdefault(task.epic, []).append(task)
    return grouped


def is_epic_complete(epic_tasks: Sequence[Task]) -> bool:
    """An epic is complete when it has tasks and all of them are DONE."""
    return len(epic_tasks) > 0 and all(task.is_done for task in epic_tasks)


def completed_epics(all_tasks: Iterable[Task]) -> set[str]:
    """Ids of every epic whose tasks are all DONE."""
    return {
        epic for epic, members in group_by_epic(all_tasks).items() if is_epic_complete(members)
    }


def current_epic(all_tasks: Sequence[Task], order: EpicOrder) -> str | None:
    """The earliest epic in definition order that is not yet complete."""
    grouped = group_by_epic(all_tasks)
    for epic in order.ordered(grouped):
        if not is_epic_complete(grouped[epic]):
            return epic
    return None


__all__ = [
    "EpicOrder",
    "group_by_epic",
    "is_epic_complete",
    "completed_epics",
    "current_epic",
]
