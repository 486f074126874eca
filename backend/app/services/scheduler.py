"""
Scheduled trigger for the fleet sync.

Runs a coroutine every ``interval_minutes`` on the event loop. Each tick starts
its run as a separate task, so a slow run neither delays nor shifts the next
tick and runs may overlap. A failing run is logged. Runs are not serialised
against the manual /sync trigger either.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        interval_minutes: int,
        run: Callable[[], Awaitable[object]],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.interval_seconds = interval_minutes * 60
        self._run = run
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> None:
        """Run one scheduled sync, logging (never raising) failures."""
        logger.info("Starting scheduled email sync")
        try:
            await self._run()
            logger.info("Scheduled email sync completed successfully")
        except Exception:
            logger.exception("Scheduled email sync failed")

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.interval_seconds)
            run = asyncio.create_task(self.tick())
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)

    def start(self) -> None:
        if self.running:
            return
        logger.info(f"Scheduling email sync every {self.interval_seconds // 60} minutes")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Cancel the timer and any runs still in flight."""
        if self._task is None:
            return
        self._task.cancel()
        for run in list(self._runs):
            run.cancel()
        await asyncio.gather(self._task, *self._runs, return_exceptions=True)
        self._runs.clear()
        self._task = None
