"""Progress grid projection and rendering surfaces.

The orchestrator hands renderers an immutable :class:`ProgressGrid`.  Columns
are sections (joined by a separator to show ordering); rows within a column are
the tasks of that section that run together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from rich.cells import cell_len
from rich.console import Console
from rich.live import Live
from rich.text import Text

from .constants import DEFAULT_REFRESH_PER_SECOND, DEFAULT_SEPARATOR, STATUS_STYLES, Status


@dataclass(frozen=True)
class Cell:
    """One grid cell. A cell without a status is a not-yet-built placeholder."""
    name: str
    status: Optional[Status] = None

    @property
    def text(self) -> str:
        if self.status is None:
            return self.name
        return f"{self.status.value} {self.name}"


@dataclass(frozen=True)
class Highlight:
    style: str      # status value, mapped to a rich style by the renderer
    row: int
    col_start: int
    col_end: int


@dataclass(frozen=True)
class ProgressGrid:
    lines: tuple[str, ...] = ()
    highlights: tuple[Highlight, ...] = ()

    def to_text(self) -> Text:
        text = Text("\n".join(self.lines))
        offsets = []
        pos = 0
        for line in self.lines:
            offsets.append(pos)
            pos += len(line) + 1
        for hl in self.highlights:
            style = STATUS_STYLES.get(Status(hl.style), "")
            start = offsets[hl.row]
            text.stylize(style, start + hl.col_start, start + hl.col_end)
        return text

    def __str__(self) -> str:
        return "\n".join(self.lines)


def _ljust(text: str, width: int) -> str:
    return text + " " * max(width - cell_len(text), 0)


def render_progress(
    columns: Sequence[Sequence[Optional[Cell]]],
    separator: str = DEFAULT_SEPARATOR,
) -> ProgressGrid:
    """Project section columns into a text grid.

    ``None`` cells (e.g. tasks that have been disposed) render blank.
    """
    widths = [max([1] + [cell_len(c.text) for c in column if c is not None]) for column in columns]
    max_row = max((len(column) for column in columns), default=0)

    lines: list[str] = []
    highlights: list[Highlight] = []
    for row in range(max_row):
        parts: list[str] = []
        col_start = 0
        for column, width in zip(columns, widths):
            cell = column[row] if row < len(column) else None
            if cell is not None:
                parts.append(_ljust(cell.text, width))
                if cell.status is not None:
                    highlights.append(Highlight(
                        style=cell.status.value,
                        row=row,
                        col_start=col_start,
                        col_end=col_start + len(cell.status.value),
                    ))
            else:
                parts.append(" " * width)
            col_start += len(parts[-1]) + len(separator)
        lines.append(separator.join(parts))
    return ProgressGrid(lines=tuple(lines), highlights=tuple(highlights))


# ---------------------------------------------------------------------------
# Rendering surfaces
# ---------------------------------------------------------------------------

class Renderer(Protocol):
    def update(self, grid: ProgressGrid) -> None: ...

    def close(self) -> None: ...


class GridBuffer:
    """Default surface: keeps the latest grid until closed."""

    def __init__(self) -> None:
        self.grid: Optional[ProgressGrid] = None
        self.closed = False

    def update(self, grid: ProgressGrid) -> None:
        if self.closed:
            return
        self.grid = grid

    def close(self) -> None:
        self.closed = True


class LiveRenderer(GridBuffer):
    """Render the grid in a ``rich`` live region."""

    def __init__(
        self,
        console: Optional[Console] = None,
        *,
        refresh_per_second: float = DEFAULT_REFRESH_PER_SECOND,
    ) -> None:
        super().__init__()
        self._live = Live(
            Text(""),
            console=console or Console(),
            refresh_per_second=refresh_per_second,
        )
        self._started = False

    def update(self, grid: ProgressGrid) -> None:
        if self.closed:
            return
        super().update(grid)
        if not self._started:
            self._live.start()
            self._started = True
        self._live.update(grid.to_text(), refresh=True)

    def close(self) -> None:
        if self.closed:
            return
        super().close()
        if self._started:
            self._live.stop()
