"""Single-queue event loop.

Messages are handled one at a time by :func:`update.update`.  Each returned
:class:`Task` runs in the default executor (after its delay) and feeds exactly one
message back into the same queue; a task that raises becomes an ``ErrorResult``.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from .state import AppState, ErrorResult, Task
from .update import update

log = logging.getLogger('gh_project_board')


class Runtime:
    def __init__(self, state: AppState, on_change: Optional[Callable[[AppState], None]] = None) -> None:
        self.state = state
        self.on_change = on_change
        self.queue: asyncio.Queue = asyncio.Queue()
        # running asyncio task -> whether it is a delayed timer
        self._pending: Dict[asyncio.Task, bool] = {}

    def post(self, msg: object) -> None:
        self.queue.put_nowait(msg)

    def dispatch(self, msg: object) -> None:
        started = time.perf_counter()
        self.state, tasks = update(self.state, msg)
        log.debug("%s handled in %.1f ms", type(msg).__name__, (time.perf_counter() - started) * 1000)
        for task in tasks:
            self.spawn(task)
        if self.on_change is not None:
            self.on_change(self.state)

    def spawn(self, task: Task) -> asyncio.Task:
        runner = asyncio.get_running_loop().create_task(self._run(task))
        self._pending[runner] = task.delay > 0
        runner.add_done_callback(lambda t: self._pending.pop(t, None))
        return runner

    async def _run(self, task: Task) -> None:
        if task.delay > 0:
            await asyncio.sleep(task.delay)
        loop = asyncio.get_running_loop()
        started = time.perf_counter()
        try:
            msg = await loop.run_in_executor(None, task.run)
            log.debug("task %s finished in %.1f ms", task.name or task.run, (time.perf_counter() - started) * 1000)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("task %s failed", task.name or task.run)
            msg = ErrorResult(error=str(e))
        self.post(msg)

    def cancel_pending(self) -> None:
        for runner in list(self._pending):
            runner.cancel()

    async def run(self) -> AppState:
        """Consume messages until the state asks to quit."""
        try:
            while not self.state.quit:
                msg = await self.queue.get()
                self.dispatch(msg)
        finally:
            self.cancel_pending()
        return self.state

    async def run_until_idle(self) -> AppState:
        """Process messages until the queue is empty and no undelayed task is running.

        Delayed tasks such as notification expiry are left pending.
        """
        while not self.state.quit:
            while not self.queue.empty():
                self.dispatch(self.queue.get_nowait())
                if self.state.quit:
                    return self.state
            busy = [runner for runner, delayed in self._pending.items() if not delayed and not runner.done()]
            if not busy:
                if self.queue.empty():
                    break
                continue
            await asyncio.wait(busy, return_when=asyncio.FIRST_COMPLETED)
        return self.state
