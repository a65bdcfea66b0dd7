"""Logging setup and compact task summaries for log output."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from .task import Task


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan> - "
            "{message}"
        ),
    )


def summarize_task(task: "Task") -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a task.

    Args:
        task: Task to summarize.

    Returns:
        A dictionary with the task id, name, status and, when known, its
        duration and exit code.
    """
    d: dict[str, Any] = {"id": task.id, "name": task.name, "status": task.status.value}
    if task.time_start is not None and task.time_end is not None:
        d["duration_seconds"] = round(task.time_end - task.time_start, 2)
    result = task.result or {}
    if "exit_code" in result:
        d["exit_code"] = result["exit_code"]
    if result.get("error"):
        error = str(result["error"])
        d["error"] = (error[:240] + "…") if len(error) > 240 else error
    return d
