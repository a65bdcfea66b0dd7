"""Attachable task behaviours.

A component receives lifecycle events from the task it is attached to.  Event
handlers are plain methods; the base class provides no-op defaults so that a
component only overrides what it cares about.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger

from .constants import Status

if TYPE_CHECKING:
    from .task import Task


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class Component:
    """Base class for task components."""

    name: str = ""

    def on_start(self, task: "Task") -> None:
        pass

    def on_status(self, task: "Task", status: Status) -> None:
        pass

    def on_complete(self, task: "Task", status: Status) -> None:
        pass

    def on_reset(self, task: "Task") -> None:
        pass

    def on_dispose(self, task: "Task") -> None:
        pass

    def on_broadcast_update(self, task: "Task", source: "Task") -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ComponentRegistry:
    """Registry of component classes keyed by component name.

    Components register themselves on import via ``register()``.  Tasks resolve
    component names through the registry when a component is added by name.
    """

    def __init__(self) -> None:
        self._components: dict[str, type[Component]] = {}

    def register(self, component_cls: type[Component]) -> type[Component]:
        """Register a component class. Can be used as a decorator."""
        if not component_cls.name:
            raise ValueError(f"Component {component_cls.__name__} has no name")
        self._components[component_cls.name] = component_cls
        return component_cls

    def get(self, name: str, **kwargs: Any) -> Component:
        if name not in self._components:
            available = ", ".join(sorted(self._components.keys()))
            raise KeyError(f"Unknown component '{name}' (registered: {available})")
        return self._components[name](**kwargs)

    def has(self, name: str) -> bool:
        return name in self._components

    def list_components(self) -> list[str]:
        return sorted(self._components.keys())


# Singleton registry; built-in components register here on import
component_registry = ComponentRegistry()


# ---------------------------------------------------------------------------
# Built-in components
# ---------------------------------------------------------------------------

@component_registry.register
class OnStatusBroadcast(Component):
    """Broadcast every status change of a sub-task to all registered tasks."""

    name = "orchestrator.on_status_broadcast"

    def on_status(self, task: "Task", status: Status) -> None:
        if task.task_list is None:
            return
        task.task_list.broadcast("on_broadcast_update", task)


@component_registry.register
class OnBroadcastUpdateOrchestrator(Component):
    """Wake a meta-task's orchestrator when one of its sub-tasks changes status."""

    name = "orchestrator.on_broadcast_update_orchestrator"

    def on_broadcast_update(self, task: "Task", source: "Task") -> None:
        notify = getattr(task.strategy, "notify_update", None)
        if notify is None:
            logger.debug("Task '{}' has no orchestrator strategy to notify", task.name)
            return
        notify(source)
