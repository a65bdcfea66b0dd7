"""Provide the public `task_orchestrator` package exports."""

from __future__ import annotations

from .constants import Status, TaskTag
from .definitions import TaskDefinition, TaskSpec, normalize_job
from .strategies import OrchestratorStrategy, ShellStrategy, Strategy, build_strategy
from .task import Task
from .task_list import TaskList
from .templates import ParamDef, SearchParams, TaskTemplate, TemplateRegistry

__all__ = [
    "OrchestratorStrategy",
    "ParamDef",
    "SearchParams",
    "ShellStrategy",
    "Status",
    "Strategy",
    "Task",
    "TaskDefinition",
    "TaskList",
    "TaskSpec",
    "TaskTag",
    "TaskTemplate",
    "TemplateRegistry",
    "build_strategy",
    "normalize_job",
]
