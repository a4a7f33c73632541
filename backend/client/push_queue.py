# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
PushQueue – schedules background snapshot pushes after local mutations.

Policies
--------
single-flight  At most one push runs at a time.  Requests arriving while it
               runs collapse into one follow-up push, which reads the store
               afresh, so the server ends with the latest local state.
overlap        Every request starts its own push immediately.  Pushes race
               and the server keeps whichever finished last, which may be an
               older state.  Kept for compatibility with clients that relied
               on it.

A failed push is logged and never propagates to the code that requested it.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

from core.logger import logger


class PushPolicy(str, Enum):
    SINGLE_FLIGHT = "single-flight"
    OVERLAP = "overlap"


class PushQueue:
    def __init__(
        self,
        push: Callable[[], Awaitable[Any]],
        policy: PushPolicy = PushPolicy.SINGLE_FLIGHT,
        debounce: float = 0.0,
    ):
        self._push = push
        self.policy = PushPolicy(policy)
        self.debounce = debounce
        self._dirty = False
        self._drainer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return bool(self._tasks)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def request(self) -> None:
        """Ask for a push.  Returns at once; needs a running event loop."""
        loop = asyncio.get_running_loop()
        if self.policy is PushPolicy.OVERLAP:
            self._track(loop.create_task(self._run_once()))
            return

        self._dirty = True
        if self._drainer is None or self._drainer.done():
            self._drainer = self._track(loop.create_task(self._drain()))

    async def _drain(self) -> None:
        if self.debounce:
            await asyncio.sleep(self.debounce)
        while self._dirty:
            self._dirty = False
            await self._run_once()

    async def _run_once(self) -> None:
        try:
            await self._push()
        except Exception as exc:
            logger.error("PushQueue: background push failed: %s", exc)

    async def flush(self) -> None:
        """Wait until every requested push has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._dirty = False
