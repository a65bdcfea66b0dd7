"""Shared constants: task statuses, template tags and file locations."""

from __future__ import annotations

from enum import Enum


class Status(str, Enum):
    """Lifecycle status of a task."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    CANCELED = "CANCELED"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"

    def __str__(self) -> str:
        return self.value


class TaskTag(str, Enum):
    """Tags used to group templates."""

    TEST = "TEST"
    BUILD = "BUILD"
    SERVE = "SERVE"


TERMINAL_STATUSES = frozenset({Status.CANCELED, Status.SUCCESS, Status.FAILURE})

STATUS_STYLES: dict[Status, str] = {
    Status.PENDING: "dim",
    Status.RUNNING: "bold cyan",
    Status.CANCELED: "yellow",
    Status.SUCCESS: "bold green",
    Status.FAILURE: "bold red",
}

STATE_DIR_NAME = ".task_orchestrator"
CONFIG_FILE = "config.yaml"
TEMPLATES_DIR = "templates"

DEFAULT_SEPARATOR = " -> "
DEFAULT_REFRESH_PER_SECOND = 4.0
DEFAULT_OUTPUT_TAIL_LINES = 200
DEFAULT_KILL_TIMEOUT = 5.0
