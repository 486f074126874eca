"""
Pacing for the fleet sync.

Users are synced one at a time with a fixed gap between them so several
mailboxes on the same provider are not hit back to back. The gap is a
pacing token handed out by a pacer; ``paced`` drains a queue one item per
token. Tests swap in a pacer whose sleep is a no-op.
"""

import asyncio
from collections import deque
from typing import AsyncIterator, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")


class IntervalPacer:
    """Hands out a token every ``interval_seconds``."""

    def __init__(
        self,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.interval_seconds = max(0.0, interval_seconds)
        self._sleep = sleep

    async def wait(self) -> None:
        if self.interval_seconds > 0:
            await self._sleep(self.interval_seconds)


async def paced(items: Iterable[T], pacer: IntervalPacer) -> AsyncIterator[T]:
    """
    Yield items in order, waiting for a pacing token between consecutive items.

    No wait happens before the first item or after the last one.
    """
    queue = deque(items)
    first = True
    while queue:
        if not first:
            await pacer.wait()
        first = False
        yield queue.popleft()
