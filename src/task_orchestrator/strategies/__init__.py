"""Task strategies and the factory used to build them from task definitions."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..task_list import TaskList
from ..templates import TemplateRegistry
from .base import Strategy
from .orchestrator import OrchestratorStrategy
from .shell import ShellStrategy

__all__ = [
    "OrchestratorStrategy",
    "ShellStrategy",
    "Strategy",
    "build_strategy",
]


def build_strategy(
    spec: Any,
    *,
    templates: Optional[TemplateRegistry] = None,
    task_list: Optional[TaskList] = None,
) -> Strategy:
    """Turn a strategy spec from a task definition into a strategy instance.

    *spec* may be a ``Strategy``, a strategy name (``"shell"``), or a mapping
    with a ``strategy`` key plus options, e.g.
    ``{"strategy": "orchestrator", "tasks": ["make", "make test"]}``.
    """
    if isinstance(spec, Strategy):
        return spec
    if spec is None:
        return ShellStrategy()
    if isinstance(spec, str):
        name, opts = spec, {}
    elif isinstance(spec, Mapping):
        opts = dict(spec)
        name = opts.pop("strategy", None)
    else:
        raise ValueError(f"Unsupported strategy spec: {spec!r}")

    if name == "shell":
        return ShellStrategy(**opts)
    if name == "orchestrator":
        if "tasks" not in opts:
            raise ValueError("Orchestrator strategy requires a 'tasks' list")
        tasks = opts.pop("tasks")
        return OrchestratorStrategy(tasks, templates=templates, task_list=task_list, **opts)
    raise ValueError(f"Unknown strategy '{name}' (known: orchestrator, shell)")
