# dashboard registry: one live dashboard per doctor, shared by every open view
# the first viewer starts it, the last viewer to leave tears it down

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from doctor_live.models.session import SessionContext
from doctor_live.services.change_feed import MongoChangeFeed
from doctor_live.services.db import Database, db
from doctor_live.services.live_dashboard import LiveDashboard

logger = logging.getLogger(__name__)


class DashboardRegistry:
    def __init__(self, db: Database, feed, **dashboard_options):
        self.db = db
        self.feed = feed
        self.dashboard_options = dashboard_options
        self._dashboards: dict[tuple[str, str], LiveDashboard] = {}
        self._viewers: dict[tuple[str, str], int] = {}
        self._starting: dict[tuple[str, str], asyncio.Future] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(session: SessionContext) -> tuple[str, str]:
        return (session.doctor_id, session.timezone)

    def __len__(self) -> int:
        return len(self._dashboards)

    async def acquire(self, session: SessionContext) -> LiveDashboard:
        """get the doctor's live dashboard, starting it for the first viewer"""
        if not session.doctor_id:
            # nothing to watch: an unstarted, zero-state dashboard
            return LiveDashboard(self.db, self.feed, session, **self.dashboard_options)

        key = self._key(session)
        # the lock only guards bookkeeping, the initial load runs outside it
        async with self._lock:
            dashboard = self._dashboards.get(key)
            if dashboard is None:
                dashboard = LiveDashboard(self.db, self.feed, session, **self.dashboard_options)
                self._dashboards[key] = dashboard
                self._viewers[key] = 0
                self._starting[key] = asyncio.ensure_future(dashboard.start())
            self._viewers[key] += 1
            starting = self._starting[key]
            logger.info(f"Dashboard viewer joined for doctor {session.doctor_id} ({self._viewers[key]} open)")

        # every viewer of the same doctor waits on the one shared start
        try:
            await asyncio.shield(starting)
        except BaseException:
            await self.release(dashboard)
            raise
        return dashboard

    async def release(self, dashboard: LiveDashboard):
        if not dashboard.session.doctor_id:
            await dashboard.close()
            return

        key = self._key(dashboard.session)
        async with self._lock:
            if self._dashboards.get(key) is not dashboard:
                return
            self._viewers[key] -= 1
            if self._viewers[key] > 0:
                return
            del self._dashboards[key]
            del self._viewers[key]
            del self._starting[key]
        await dashboard.close()

    @asynccontextmanager
    async def view(self, session: SessionContext) -> AsyncIterator[LiveDashboard]:
        dashboard = await self.acquire(session)
        try:
            yield dashboard
        finally:
            await self.release(dashboard)

    async def close(self):
        """tear down every live dashboard (application shutdown)"""
        async with self._lock:
            dashboards = list(self._dashboards.values())
            starting = list(self._starting.values())
            self._dashboards.clear()
            self._viewers.clear()
            self._starting.clear()
        for dashboard in dashboards:
            await dashboard.close()
        # closed dashboards publish nothing, so pending starts just run out
        await asyncio.gather(*starting, return_exceptions=True)
        if dashboards:
            logger.info(f"Closed {len(dashboards)} live dashboards")


# singleton instance
registry = DashboardRegistry(db, MongoChangeFeed(db))


async def get_registry() -> DashboardRegistry:
    """dependency injection for the dashboard registry"""
    return registry
