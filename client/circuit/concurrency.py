"""Debounce timers and fetch-generation tracking for screen controllers."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class Debouncer:
    """Run a coroutine once input has been quiet for `delay` seconds.

    Each `trigger` restarts the delay; only the last call's action runs.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, action: Callable[[], Awaitable[None]]):
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(action, self.delay))

    def trigger_now(self, action: Callable[[], Awaitable[None]]):
        """Drop any pending action and run this one without waiting."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(action, 0))

    async def _run(self, action: Callable[[], Awaitable[None]], delay: float):
        if delay:
            await asyncio.sleep(delay)
        await action()

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self):
        """Wait for the scheduled action, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass


class FetchGeneration:
    """Monotonic token identifying the authoritative fetch.

    Starting a new generation makes every earlier token stale; results
    carrying a stale token must be dropped.
    """

    def __init__(self):
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def next(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current
