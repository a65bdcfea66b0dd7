"""Process-wide lookup from task id to task."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .task import Task


class TaskList:
    """Registry of live tasks.

    Ids are assigned on ``add`` and never reused, so a stale id simply stops
    resolving once its task has been disposed.
    """

    def __init__(self) -> None:
        self._tasks: dict[int, "Task"] = {}
        self._next_id = 1

    def add(self, task: "Task") -> int:
        if task.id is None:
            task.id = self._next_id
            self._next_id += 1
        self._tasks[task.id] = task
        return task.id

    def get(self, task_id: Optional[int]) -> Optional["Task"]:
        if task_id is None:
            return None
        return self._tasks.get(task_id)

    def remove(self, task_id: int) -> None:
        self._tasks.pop(task_id, None)

    def list_tasks(self, *, include_in_bundle: Optional[bool] = None) -> list["Task"]:
        tasks = list(self._tasks.values())
        if include_in_bundle is not None:
            tasks = [t for t in tasks if t.include_in_bundle == include_in_bundle]
        return tasks

    def broadcast(self, event: str, *args: Any) -> None:
        """Dispatch *event* to every registered task."""
        for task in list(self._tasks.values()):
            task.dispatch(event, *args)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
