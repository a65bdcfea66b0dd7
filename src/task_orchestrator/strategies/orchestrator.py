"""Strategy for "meta" tasks.

A meta-task does no work itself.  It wraps a sequence of sections of other
tasks: the tasks of one section run together, and the next section only starts
once every task of the previous one succeeded::

    strategy = OrchestratorStrategy(
        [
            "make clean",                                 # 1: clean
            [                                             # 2: build js and css together
                "npm build",
                {"template": "shell", "cmd": "lessc styles.less styles.css"},
            ],
            "npm serve",                                  # 3: serve
        ],
        templates=templates,
        task_list=task_list,
    )
    meta = Task("Build and serve app", strategy=strategy, task_list=task_list)
    meta.start()

Sub-tasks are built from templates eagerly, for all sections at once, but only
started section by section.  Everything that can re-enter the scheduler (a
sub-task finishing construction, a sub-task changing status) posts an "advance"
message to a queue; a single consumer drains it and runs :meth:`start_next`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterator, Optional, Sequence

from loguru import logger

from ..components import ComponentRegistry
from ..constants import DEFAULT_SEPARATOR, Status
from ..definitions import TaskSpec, normalize_job
from ..render import Cell, GridBuffer, ProgressGrid, Renderer, render_progress
from ..slots import SlotGrid, SlotKind
from ..status import aggregate
from ..task import Task
from ..task_list import TaskList
from ..templates import SearchParams, TemplateRegistry
from .base import Strategy

BROADCAST_COMPONENT = "orchestrator.on_status_broadcast"
UPDATE_COMPONENT = "orchestrator.on_broadcast_update_orchestrator"


class OrchestratorStrategy(Strategy):
    """Run sections of sub-tasks in order, the tasks of each section in parallel.

    Collaborators are injected: the template registry used to build sub-tasks,
    the task list they are registered in (defaults to the meta-task's own), and
    the rendering surface that receives the progress grid.
    """

    def __init__(
        self,
        tasks: Sequence[Any],
        *,
        templates: Optional[TemplateRegistry] = None,
        task_list: Optional[TaskList] = None,
        renderer: Optional[Renderer] = None,
        separator: str = DEFAULT_SEPARATOR,
        components: Optional[ComponentRegistry] = None,
    ) -> None:
        self.task: Optional[Task] = None
        self.task_defns: tuple[tuple[TaskSpec, ...], ...] = normalize_job(tasks)
        self.slots = SlotGrid(self.task_defns)
        self.templates = templates or TemplateRegistry()
        self.task_list = task_list
        self.renderer = renderer or GridBuffer()
        self.separator = separator
        self._components = components
        self._builds: dict[tuple[int, int], asyncio.Task] = {}
        self._events: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._disposed = False

    # -- helpers -------------------------------------------------------------

    def _get(self, task_id: Optional[int]) -> Optional[Task]:
        if self.task_list is None:
            return None
        return self.task_list.get(task_id)

    def _subtasks(self) -> Iterator[Task]:
        for task_id in list(self.slots.all_task_ids()):
            task = self._get(task_id)
            if task is not None:
                yield task

    def _section_complete(self, idx: int) -> bool:
        return self.slots.section_complete(idx, len(self.task_defns[idx]))

    def _section_status(self, idx: int) -> Status:
        statuses = []
        for task_id in self.slots.task_ids(idx):
            task = self._get(task_id)
            statuses.append(task.status if task is not None else None)
        return aggregate(statuses)

    def _slot_is_live(self, section: int, slot: int) -> bool:
        current = self.slots.get(section, slot)
        if not current.is_resolved:
            return False
        task = self._get(current.task_id)
        return task is not None and not task.is_disposed()

    # -- advance queue -------------------------------------------------------

    def _ensure_consumer(self) -> None:
        loop = asyncio.get_running_loop()
        if self._consumer is not None and not self._consumer.done() and self._consumer.get_loop() is loop:
            return
        queue: asyncio.Queue = asyncio.Queue()
        self._events = queue
        self._consumer = loop.create_task(self._consume(queue))

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            await queue.get()
            try:
                self.start_next()
            except Exception:
                logger.exception("Orchestrator failed to advance")
            finally:
                queue.task_done()

    def request_advance(self) -> None:
        """Schedule a run of :meth:`start_next` on the control loop."""
        if self._disposed:
            return
        if self._events is None:
            self.start_next()
            return
        self._events.put_nowait(None)

    def notify_update(self, source: Task) -> None:
        """Called when any task broadcasts a status change."""
        if source.id in set(self.slots.all_task_ids()):
            self.request_advance()

    async def wait_idle(self) -> None:
        """Wait until no sub-task is being built and no advance is queued."""
        while not self._disposed:
            pending = [b for b in self._builds.values() if not b.done()]
            if pending:
                await asyncio.wait(pending)
                continue
            if self._events is not None:
                await self._events.join()
            if all(b.done() for b in self._builds.values()):
                return

    # -- construction --------------------------------------------------------

    def _fail(self) -> None:
        if self._disposed:
            return
        if self.task is not None and not self.task.is_complete():
            self.task.finalize(Status.FAILURE)
        self.request_advance()

    async def _instantiate(self, section: int, slot: int, spec: TaskSpec, search: SearchParams) -> None:
        try:
            tmpl = await self.templates.get_by_name(spec.name, search)
            if tmpl is None:
                logger.error("Orchestrator could not find task '{}'", spec.name)
                self._fail()
                return
            definition = await self.templates.build_task_args(tmpl, search=search, params=spec.params)
            if definition is None:
                logger.warning("Canceled building task '{}'", spec.name)
                self._fail()
                return
            if self._disposed:
                return
            definition.apply_overrides(spec)

            from . import build_strategy

            strategy = build_strategy(definition.strategy, templates=self.templates, task_list=self.task_list)
            new_task = Task.from_definition(
                definition, strategy=strategy, task_list=self.task_list, registry=self._components,
            )
        except Exception:
            logger.exception("Orchestrator failed to build task '{}'", spec.name)
            self._fail()
            return

        new_task.add_component(BROADCAST_COMPONENT)
        # Sub-tasks are never bundled; they are rebuilt from the job definition on load
        new_task.set_include_in_bundle(False)
        self.slots.bind(section, slot, new_task.id)
        logger.debug("Built sub-task {} '{}' for slot ({}, {})", new_task.id, new_task.name, section, slot)
        if self._section_complete(section):
            self.request_advance()

    # -- strategy interface --------------------------------------------------

    def start(self, task: Task) -> None:
        self.task = task
        task.add_component(UPDATE_COMPONENT)
        if self.task_list is None:
            self.task_list = task.task_list
        if self.task_list is None:
            self.task_list = TaskList()
            task.task_list = self.task_list
            self.task_list.add(task)
        elif task.task_list is not self.task_list:
            logger.warning("Meta-task '{}' is not in the orchestrator's task list", task.name)
        self._ensure_consumer()

        loop = asyncio.get_running_loop()
        search = SearchParams(dir=task.cwd)
        for i, section in enumerate(self.task_defns):
            for j, spec in enumerate(section):
                if self._slot_is_live(i, j):
                    continue
                build = self._builds.get((i, j))
                if build is not None and not build.done():
                    continue
                self.slots.mark_in_flight(i, j, rebuild=self.slots.get(i, j).kind != SlotKind.UNRESOLVED)
                self._builds[(i, j)] = loop.create_task(self._instantiate(i, j, spec, search))

        if not self.task_defns or self._section_complete(0):
            self.request_advance()

    def start_next(self) -> None:
        """Start the next runnable section, or finalize the meta-task.

        Safe to call at any time and any number of times: the section statuses
        are recomputed from scratch on every call.
        """
        task = self.task
        if task is not None and not task.is_complete():
            all_success = not self.task_defns
            for i in range(len(self.task_defns)):
                if not self._section_complete(i):
                    break
                status = self._section_status(i)
                if status == Status.PENDING:
                    logger.debug("Starting section {} of '{}'", i + 1, task.name)
                    for task_id in self.slots.task_ids(i):
                        subtask = self._get(task_id)
                        if subtask is not None and subtask.is_pending():
                            subtask.start()
                    break
                elif status == Status.RUNNING:
                    break
                elif status in (Status.FAILURE, Status.CANCELED):
                    if task.is_running():
                        logger.info("Section {} of '{}' ended with {}", i + 1, task.name, status.value)
                        task.finalize(status)
                    break
                all_success = i == len(self.task_defns) - 1
            if all_success:
                task.finalize(Status.SUCCESS)
        self.render()

    def stop(self) -> None:
        for subtask in self._subtasks():
            subtask.stop()

    def reset(self) -> None:
        self.task = None
        for subtask in self._subtasks():
            subtask.reset()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for subtask in self._subtasks():
            subtask.dispose()
        for build in self._builds.values():
            if not build.done():
                build.cancel()
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
        self.renderer.close()

    # -- rendering -----------------------------------------------------------

    def get_display(self) -> Renderer:
        return self.renderer

    def render(self) -> ProgressGrid:
        """Project the slot grid and hand the result to the renderer."""
        columns: list[list[Optional[Cell]]] = []
        for i, section in enumerate(self.task_defns):
            column: list[Optional[Cell]] = []
            for j, spec in enumerate(section):
                current = self.slots.get(i, j)
                if current.is_resolved:
                    subtask = self._get(current.task_id)
                    column.append(Cell(subtask.name, subtask.status) if subtask is not None else None)
                else:
                    column.append(Cell(spec.name))
            columns.append(column)
        grid = render_progress(columns, self.separator)
        self.renderer.update(grid)
        return grid
