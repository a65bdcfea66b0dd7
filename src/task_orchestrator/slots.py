"""Runtime slot grid mirroring the shape of a job's task specs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Sequence

from .definitions import Section


class SlotKind(str, Enum):
    UNRESOLVED = "unresolved"   # construction never attempted
    IN_FLIGHT = "in_flight"     # construction requested, not finished
    RESOLVED = "resolved"       # bound to a task id


@dataclass(frozen=True)
class Slot:
    kind: SlotKind
    task_id: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return self.kind == SlotKind.RESOLVED


UNRESOLVED = Slot(SlotKind.UNRESOLVED)
IN_FLIGHT = Slot(SlotKind.IN_FLIGHT)


def resolved(task_id: int) -> Slot:
    return Slot(SlotKind.RESOLVED, task_id)


class SlotGrid:
    """Mutable grid of slots, one per ``(section, slot)`` position.

    Slots only move forward: unresolved -> in-flight -> resolved.  A slot may go
    back to in-flight when its previous construction ended without a task, or
    when the task it was bound to has since been disposed.
    """

    def __init__(self, sections: Sequence[Section]) -> None:
        self._rows: list[list[Slot]] = [[UNRESOLVED for _ in section] for section in sections]

    def __len__(self) -> int:
        return len(self._rows)

    def section_size(self, section: int) -> int:
        return len(self._rows[section])

    def get(self, section: int, slot: int) -> Slot:
        return self._rows[section][slot]

    def mark_in_flight(self, section: int, slot: int, *, rebuild: bool = False) -> None:
        """Claim a slot for construction.

        ``rebuild`` must be set to re-claim a slot that is not unresolved; the caller
        vouches that its task is gone or that the last construction was abandoned.
        """
        current = self._rows[section][slot]
        if current.kind != SlotKind.UNRESOLVED and not rebuild:
            raise ValueError(f"Slot ({section}, {slot}) is already {current.kind.value}")
        self._rows[section][slot] = IN_FLIGHT

    def bind(self, section: int, slot: int, task_id: int) -> None:
        current = self._rows[section][slot]
        if current.kind != SlotKind.IN_FLIGHT:
            raise ValueError(
                f"Slot ({section}, {slot}) must be in flight to bind a task, is {current.kind.value}"
            )
        self._rows[section][slot] = resolved(task_id)

    def section_complete(self, section: int, expected: int) -> bool:
        """True when every slot of *section* is bound and the count matches *expected*."""
        row = self._rows[section]
        return all(s.is_resolved for s in row) and len(row) == expected

    def task_ids(self, section: int) -> list[int]:
        return [s.task_id for s in self._rows[section] if s.is_resolved]

    def all_task_ids(self) -> Iterator[int]:
        for row in self._rows:
            for s in row:
                if s.is_resolved:
                    yield s.task_id

    def snapshot(self) -> tuple[tuple[Slot, ...], ...]:
        return tuple(tuple(row) for row in self._rows)
