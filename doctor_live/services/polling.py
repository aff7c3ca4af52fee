# polling fallback: periodic full refresh that bounds staleness when the change feed drops

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from doctor_live.config import settings

logger = logging.getLogger(__name__)


class PollingFallback:
    def __init__(self, refresh: Callable[[], Awaitable[None]], interval: Optional[float] = None):
        self.refresh = refresh
        self.interval = interval if interval is not None else settings.DASHBOARD_POLL_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Scheduled dashboard refresh failed")

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
