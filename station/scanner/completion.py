"""Round-scoped completion barrier for dispatched connect tasks."""

from __future__ import annotations

import asyncio


class RoundBarrier:
    """Counts live units of work and fires once all of them have exited.

    Every tracked task holds a slot until it finishes, whether it succeeded,
    failed or was cancelled. The owner seals the barrier after the last task
    has been dispatched; :meth:`wait` returns as soon as the barrier is
    sealed and no slot is held.
    """

    def __init__(self) -> None:
        self._active = 0
        self._sealed = False
        self._done = asyncio.Event()

    @property
    def active(self) -> int:
        return self._active

    @property
    def sealed(self) -> bool:
        return self._sealed

    def acquire(self) -> None:
        if self._sealed:
            raise RuntimeError("cannot add work to a sealed round barrier")
        self._active += 1

    def release(self) -> None:
        if self._active <= 0:
            raise RuntimeError("round barrier released more times than acquired")
        self._active -= 1
        self._check()

    def track(self, task: asyncio.Future) -> asyncio.Future:
        self.acquire()
        task.add_done_callback(lambda _task: self.release())
        return task

    def seal(self) -> None:
        self._sealed = True
        self._check()

    async def wait(self) -> None:
        if not self._sealed:
            raise RuntimeError("round barrier must be sealed before waiting")
        await self._done.wait()

    def _check(self) -> None:
        if self._sealed and self._active == 0:
            self._done.set()
