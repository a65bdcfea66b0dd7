"""Aggregation rules over task statuses."""

from __future__ import annotations

from typing import Iterable, Optional

from .constants import TERMINAL_STATUSES, Status


def is_terminal(status: Status) -> bool:
    return status in TERMINAL_STATUSES


def aggregate(statuses: Iterable[Optional[Status]]) -> Status:
    """Return the status representing a whole section.

    The scan is positional: the first status that is not ``SUCCESS`` wins, so
    ``[RUNNING, FAILURE]`` aggregates to ``RUNNING`` while ``[SUCCESS, FAILURE]``
    aggregates to ``FAILURE``.  ``None`` stands for a task that could not be looked
    up and counts as ``FAILURE``.  An empty section is ``SUCCESS``.
    """
    for status in statuses:
        if status is None:
            return Status.FAILURE
        if status != Status.SUCCESS:
            return status
    return Status.SUCCESS
