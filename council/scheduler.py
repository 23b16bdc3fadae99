"""Cancellable periodic task driving the orchestration tick."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds until stopped.

    ``sleep`` is injectable so tests can drive ticks without real timers.
    A failing callback is logged and the schedule keeps going.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        sleep: Sleep = asyncio.sleep,
        name: str = "periodic",
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._callback = callback
        self._interval = interval
        self._sleep = sleep
        self._name = name
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self._name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("%s stopped after %d ticks", self._name, self.ticks)

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            self.ticks += 1
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s tick %d failed", self._name, self.ticks)
