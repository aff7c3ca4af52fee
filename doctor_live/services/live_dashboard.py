# live dashboard: keeps one doctor's overview fresh
# composes the metrics aggregator, schedule and chamber fetchers, change feed listener and polling fallback
#
# overlapping refreshes are ordered by a generation counter: each refresh takes the next
# generation when it starts and its results are only published if nothing newer has been
# published for the same slice (stats, or the appointment/chamber lists). teardown bumps
# the epoch so refreshes still in flight never write into a discarded dashboard.

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Optional

from doctor_live.models.dashboard import DashboardSnapshot, DashboardState, DashboardStats
from doctor_live.models.events import DashboardNotification
from doctor_live.models.session import SessionContext
from doctor_live.services.change_listener import AppointmentCallback, ChangeFeedListener
from doctor_live.services.chambers import ChamberFetcher
from doctor_live.services.db import Database
from doctor_live.services.metrics import MetricsAggregator
from doctor_live.services.polling import PollingFallback
from doctor_live.services.schedule import ScheduleFetcher

logger = logging.getLogger(__name__)

# observers receive ("snapshot", DashboardState) or ("notification", DashboardNotification)
Observer = Callable[[str, object], None]


class LiveDashboard:
    def __init__(
        self,
        db: Database,
        feed,
        session: SessionContext,
        *,
        on_new_appointment: Optional[AppointmentCallback] = None,
        on_appointment_update: Optional[AppointmentCallback] = None,
        poll_interval: Optional[float] = None,
        query_timeout: Optional[float] = None,
    ):
        self.db = db
        self.feed = feed
        self.on_new_appointment = on_new_appointment
        self.on_appointment_update = on_appointment_update
        self.poll_interval = poll_interval
        self.query_timeout = query_timeout

        self._snapshot = DashboardSnapshot()
        self._last_updated = datetime.now(timezone.utc)
        self._observers: list[Observer] = []
        self._generation = 0
        self._published_stats = 0
        self._published_lists = 0
        self._epoch = 0
        self._in_flight: Counter = Counter()
        self._started = False
        self._closed = False

        self._bind(session)

    def _bind(self, session: SessionContext):
        self.session = session
        self.metrics = MetricsAggregator(self.db, session, self.query_timeout)
        self.schedule = ScheduleFetcher(self.db, session, self.query_timeout)
        self.chambers = ChamberFetcher(self.db, session, self.query_timeout)
        self.listener = ChangeFeedListener(
            self.feed,
            session,
            refresh=self.refresh,
            refresh_metrics=self.refresh_metrics,
            notify=self._notify,
            on_new_appointment=self.on_new_appointment,
            on_appointment_update=self.on_appointment_update,
        )
        self.poller = PollingFallback(self.refresh, self.poll_interval)

    # display state

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    @property
    def stats(self) -> DashboardStats:
        return self._snapshot.stats

    @property
    def is_loading(self) -> bool:
        return self._in_flight[self._epoch] > 0

    @property
    def last_updated(self) -> datetime:
        return self._last_updated

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    def state(self) -> DashboardState:
        return DashboardState(
            stats=self._snapshot.stats,
            today_appointments=self._snapshot.today_appointments,
            chambers=self._snapshot.chambers,
            is_loading=self.is_loading,
            last_updated=self._last_updated,
        )

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """register an observer, returns a disposer that unregisters it"""
        self._observers.append(observer)

        def dispose():
            if observer in self._observers:
                self._observers.remove(observer)

        return dispose

    def _emit(self, kind: str, payload):
        for observer in list(self._observers):
            try:
                observer(kind, payload)
            except Exception:
                logger.exception(f"Dashboard observer failed on {kind}")

    def _notify(self, notification: DashboardNotification):
        if not self._closed:
            self._emit("notification", notification)

    # refresh

    def _emit_loading(self, epoch: int):
        if not self._closed and epoch == self._epoch:
            self._emit("snapshot", self.state())

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _publish(
        self,
        generation: int,
        epoch: int,
        stats: Optional[DashboardStats],
        appointments=None,
        chambers=None,
    ) -> bool:
        if self._closed or epoch != self._epoch:
            logger.debug(f"Discarding refresh {generation} for doctor {self.session.doctor_id} after teardown")
            return False

        changes = {}
        if stats is not None and generation > self._published_stats:
            changes["stats"] = stats
            self._published_stats = generation
        if appointments is not None and generation > self._published_lists:
            changes["today_appointments"] = appointments
            changes["chambers"] = chambers or []
            self._published_lists = generation

        if not changes:
            logger.debug(f"Discarding superseded refresh {generation} for doctor {self.session.doctor_id}")
            return False

        # replace the snapshot as a whole, never field by field
        self._snapshot = self._snapshot.model_copy(update=changes)
        self._last_updated = datetime.now(timezone.utc)
        self._emit("snapshot", self.state())
        return True

    async def refresh(self) -> None:
        """re-run stats, today's schedule and chambers concurrently and publish them together"""
        if not self.session.doctor_id or self._closed:
            return

        generation = self._next_generation()
        epoch = self._epoch
        self._in_flight[epoch] += 1
        if self._in_flight[epoch] == 1:
            self._emit_loading(epoch)

        results = None
        try:
            results = await asyncio.gather(
                self.metrics.aggregate(),
                self.schedule.fetch(),
                self.chambers.fetch(),
            )
        finally:
            self._in_flight[epoch] -= 1
            if self._in_flight[epoch] <= 0:
                del self._in_flight[epoch]
            published = results is not None and self._publish(generation, epoch, *results)
            # a failed or superseded refresh still owes observers the settled loading flag
            if not published and not self.is_loading:
                self._emit_loading(epoch)

    async def refresh_metrics(self) -> None:
        """re-run only the scalar stats"""
        if not self.session.doctor_id or self._closed:
            return

        generation = self._next_generation()
        epoch = self._epoch
        stats = await self.metrics.aggregate()
        self._publish(generation, epoch, stats)

    # lifecycle

    async def start(self):
        """initial refresh, then arm the change feed and the polling fallback"""
        if self._started or self._closed or not self.session.doctor_id:
            return
        self._started = True
        await self.refresh()
        if self._closed or not self._started:
            return
        self.listener.start()
        self.poller.start()
        logger.info(f"Live dashboard started for doctor {self.session.doctor_id}")

    async def _disarm(self):
        self._epoch += 1
        self._started = False
        await self.listener.stop()
        await self.poller.stop()

    async def set_session(self, session: SessionContext):
        """switch to another doctor: tear down the old feeds before arming new ones"""
        if self._closed:
            return
        if session == self.session and self._started:
            return

        await self._disarm()
        self._bind(session)
        self._snapshot = DashboardSnapshot()
        self._published_stats = self._published_lists = self._generation
        self._last_updated = datetime.now(timezone.utc)
        self._emit("snapshot", self.state())
        await self.start()

    async def close(self):
        if self._closed:
            return
        self._closed = True
        await self._disarm()
        self._observers.clear()
        logger.info(f"Live dashboard closed for doctor {self.session.doctor_id}")
