"""Run a task's command as a subprocess."""

from __future__ import annotations

import asyncio
import os
import signal
from collections import deque
from typing import TYPE_CHECKING, Optional

from loguru import logger

from ..constants import DEFAULT_KILL_TIMEOUT, DEFAULT_OUTPUT_TAIL_LINES, Status
from .base import Strategy

if TYPE_CHECKING:
    from ..task import Task

_READ_CHUNK = 65536
_MAX_LINE_BYTES = 65536


def _signal(proc: asyncio.subprocess.Process, *, kill: bool = False) -> None:
    """Signal the process group of *proc* (the process itself off POSIX)."""
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL if kill else signal.SIGTERM)
        elif kill:
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        pass


class ShellStrategy(Strategy):
    """Run ``task.cmd`` and finalize on exit: 0 is SUCCESS, anything else FAILURE.

    A string command goes through the shell, a list is executed directly.  The
    command runs in its own process group; ``stop`` sends SIGTERM to the group and
    SIGKILL after ``kill_timeout`` seconds.  The last ``tail_lines`` lines of
    combined stdout/stderr are kept in ``output``; lines longer than 64 KiB are
    kept in pieces.
    """

    def __init__(
        self,
        tail_lines: int = DEFAULT_OUTPUT_TAIL_LINES,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.output: deque[str] = deque(maxlen=tail_lines)
        self.kill_timeout = kill_timeout
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._runner: Optional[asyncio.Task] = None
        self._reaper: Optional[asyncio.Task] = None

    def start(self, task: "Task") -> None:
        if not task.cmd:
            logger.error("Task '{}' has no command to run", task.name)
            task.finalize(Status.FAILURE)
            return
        self.output.clear()
        self._runner = asyncio.get_running_loop().create_task(self._run(task))

    async def _run(self, task: "Task") -> None:
        env = {**os.environ, **(task.env or {})}
        try:
            if isinstance(task.cmd, list):
                proc = await asyncio.create_subprocess_exec(
                    *task.cmd, cwd=task.cwd, env=env, start_new_session=True,
                    stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT,
                )
            else:
                proc = await asyncio.create_subprocess_shell(
                    task.cmd, cwd=task.cwd, env=env, start_new_session=True,
                    stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT,
                )
        except OSError as exc:
            logger.error("Failed to launch task '{}': {}", task.name, exc)
            if task.is_running():
                task.result = {"error": str(exc)}
                task.finalize(Status.FAILURE)
            return

        self._proc = proc
        try:
            if proc.stdout is not None:
                await self._collect(proc.stdout)
            code = await proc.wait()
        except Exception as exc:
            logger.exception("Lost track of the process of task '{}'", task.name)
            _signal(proc, kill=True)
            if task.is_running():
                task.result = {"error": str(exc), "output": list(self.output)}
                task.finalize(Status.FAILURE)
            return
        finally:
            if self._proc is proc:
                self._proc = None

        if task.is_running():
            task.result = {"exit_code": code, "output": list(self.output)}
            task.finalize(Status.SUCCESS if code == 0 else Status.FAILURE)

    async def _collect(self, stream: asyncio.StreamReader) -> None:
        pending = b""
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for line in lines:
                self._append(line)
            while len(pending) >= _MAX_LINE_BYTES:
                self._append(pending[:_MAX_LINE_BYTES])
                pending = pending[_MAX_LINE_BYTES:]
        if pending:
            self._append(pending)

    def _append(self, raw: bytes) -> None:
        self.output.append(raw.decode(errors="replace").rstrip("\r"))

    async def _reap(self, proc: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(proc.wait(), self.kill_timeout)
        except asyncio.TimeoutError:
            logger.warning("Process {} did not exit {}s after SIGTERM, killing it", proc.pid, self.kill_timeout)
        except asyncio.CancelledError:
            _signal(proc, kill=True)
            raise
        # Children of a shell command may still hold the group
        _signal(proc, kill=True)
        await proc.wait()

    def stop(self) -> None:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _signal(proc, kill=True)
            return
        _signal(proc)
        if self._reaper is None or self._reaper.done():
            self._reaper = loop.create_task(self._reap(proc))

    async def wait_stopped(self) -> None:
        """Wait until a process signalled by :meth:`stop` has been reaped."""
        if self._reaper is not None:
            await self._reaper

    def reset(self) -> None:
        self.stop()
        self.output.clear()

    def dispose(self) -> None:
        self.stop()
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
        self._runner = None
