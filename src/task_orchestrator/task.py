"""A unit of work with a status, a strategy that does the work, and components."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Iterable, Optional, Union

from loguru import logger

from .components import Component, ComponentRegistry, component_registry
from .constants import Status
from .definitions import TaskDefinition
from .status import is_terminal
from .task_list import TaskList


class Task:
    """A task owned by a :class:`TaskList`.

    The task itself only tracks lifecycle; the actual work is delegated to its
    *strategy* (any object with ``start(task)``, ``stop()``, ``reset()`` and
    ``dispose()``).  Every status change is dispatched to the task's components
    as ``on_status``.
    """

    def __init__(
        self,
        name: str,
        *,
        cmd: Optional[Union[str, list[str]]] = None,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        strategy: Any = None,
        components: Iterable[Union[str, Component]] = (),
        metadata: Optional[dict[str, Any]] = None,
        task_list: Optional[TaskList] = None,
        registry: Optional[ComponentRegistry] = None,
    ) -> None:
        self.id: Optional[int] = None
        self.name = name
        self.cmd = cmd
        self.cwd = cwd or os.getcwd()
        self.env = dict(env) if env else None
        self.strategy = strategy
        self.metadata = dict(metadata or {})
        self.status = Status.PENDING
        self.result: Optional[dict[str, Any]] = None
        self.include_in_bundle = True
        self.time_start: Optional[float] = None
        self.time_end: Optional[float] = None
        self.components: list[Component] = []
        self.task_list = task_list
        self._registry = registry or component_registry
        self._disposed = False
        self._done = asyncio.Event()
        for component in components:
            self.add_component(component)
        if task_list is not None:
            task_list.add(self)

    @classmethod
    def from_definition(
        cls,
        definition: TaskDefinition,
        *,
        strategy: Any = None,
        task_list: Optional[TaskList] = None,
        registry: Optional[ComponentRegistry] = None,
    ) -> "Task":
        return cls(
            definition.name,
            cmd=definition.cmd,
            cwd=definition.cwd,
            env=definition.env,
            strategy=strategy,
            components=definition.components,
            metadata=definition.metadata,
            task_list=task_list,
            registry=registry,
        )

    def __repr__(self) -> str:
        return f"<Task {self.id} {self.name!r} {self.status.value}>"

    # -- state queries -------------------------------------------------------

    def is_pending(self) -> bool:
        return self.status == Status.PENDING

    def is_running(self) -> bool:
        return self.status == Status.RUNNING

    def is_complete(self) -> bool:
        return is_terminal(self.status)

    def is_disposed(self) -> bool:
        return self._disposed

    # -- components ----------------------------------------------------------

    def add_component(self, component: Union[str, Component]) -> Component:
        """Attach a component, replacing any existing one with the same name."""
        if isinstance(component, str):
            component = self._registry.get(component)
        self.components = [c for c in self.components if c.name != component.name]
        self.components.append(component)
        return component

    def has_component(self, name: str) -> bool:
        return any(c.name == name for c in self.components)

    def dispatch(self, event: str, *args: Any) -> None:
        for component in list(self.components):
            getattr(component, event)(self, *args)

    def set_include_in_bundle(self, include: bool) -> None:
        self.include_in_bundle = include

    # -- lifecycle -----------------------------------------------------------

    def _set_status(self, status: Status) -> None:
        self.status = status
        self.dispatch("on_status", status)

    def start(self) -> bool:
        if self._disposed:
            logger.warning("Cannot start disposed task '{}'", self.name)
            return False
        if not self.is_pending():
            logger.debug("Task '{}' is {}, not starting", self.name, self.status.value)
            return False
        logger.debug("Starting task {} '{}'", self.id, self.name)
        self.time_start = time.time()
        self._set_status(Status.RUNNING)
        self.dispatch("on_start")
        if self.strategy is not None:
            self.strategy.start(self)
        return True

    def finalize(self, status: Union[Status, str]) -> bool:
        """Move the task to a terminal *status*.

        Returns False if the task was already complete.  The strategy is always
        stopped so that work it spawned does not outlive the task.
        """
        status = Status(status)
        if not is_terminal(status):
            raise ValueError(f"Cannot finalize task '{self.name}' with non-terminal status {status.value}")
        if self.is_complete():
            logger.debug("Task '{}' already finalized as {}", self.name, self.status.value)
            return False
        logger.debug("Task {} '{}' finished: {}", self.id, self.name, status.value)
        self.time_end = time.time()
        self._set_status(status)
        self.dispatch("on_complete", status)
        if self.strategy is not None:
            self.strategy.stop()
        self._done.set()
        return True

    def stop(self) -> bool:
        if not self.is_running():
            return False
        return self.finalize(Status.CANCELED)

    def reset(self) -> None:
        if self.is_running():
            self.stop()
        self.status = Status.PENDING
        self.result = None
        self.time_start = None
        self.time_end = None
        self._done = asyncio.Event()
        if self.strategy is not None:
            self.strategy.reset()
        self.dispatch("on_reset")
        self.dispatch("on_status", Status.PENDING)

    def dispose(self) -> bool:
        """Release the task. Safe to call more than once."""
        if self._disposed:
            return False
        if self.is_running():
            self.stop()
        self.dispatch("on_dispose")
        if self.strategy is not None:
            self.strategy.dispose()
        self._disposed = True
        if self.task_list is not None and self.id is not None:
            self.task_list.remove(self.id)
        return True

    async def wait(self) -> Status:
        """Wait until the task reaches a terminal status and return it."""
        await self._done.wait()
        return self.status
