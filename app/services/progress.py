from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterator

logger = logging.getLogger(__name__)

COMPLETE = 100


def progress_steps(step: int = 5, start: int = 0) -> Iterator[int]:
    """Yield a strictly increasing percentage that ends exactly at 100."""
    if step <= 0:
        raise ValueError("step must be positive")
    value = start
    while value < COMPLETE:
        value = min(value + step, COMPLETE)
        yield value


class ProgressTimer:
    """One cancellable task that walks ``progress_steps`` on a fixed interval.

    ``on_tick`` sees every value; ``on_complete`` runs once after 100 unless
    the timer was cancelled first.
    """

    def __init__(
        self,
        on_tick: Callable[[int], None],
        on_complete: Callable[[], Awaitable[None]] | None = None,
        *,
        step: int = 5,
        interval: float = 0.08,
    ) -> None:
        self._on_tick = on_tick
        self._on_complete = on_complete
        self._step = step
        self._interval = interval
        self._task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("progress timer already started")
        self._task = asyncio.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        for value in progress_steps(self._step):
            await asyncio.sleep(self._interval)
            self._on_tick(value)
        if self._on_complete is not None:
            await self._on_complete()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> bool:
        if self._task is None or self._task.done():
            return False
        self._task.cancel()
        return True

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
            logger.debug("progress timer cancelled")


__all__ = ["COMPLETE", "progress_steps", "ProgressTimer"]
