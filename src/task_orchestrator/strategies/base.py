"""Base class for task strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..task import Task


class Strategy(ABC):
    """Does the actual work of a task.

    ``start`` is called once the task is running; the strategy reports back by
    calling ``task.finalize(status)``.  ``stop`` must be safe to call when
    nothing is running.
    """

    @abstractmethod
    def start(self, task: "Task") -> None:
        ...

    def stop(self) -> None:
        pass

    def reset(self) -> None:
        pass

    def dispose(self) -> None:
        pass
