# change feed listener: reacts to appointment and review mutations for one doctor
# appointment events trigger a full refresh, review events a metrics-only refresh

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from doctor_live.models.appointment import AppointmentResponse
from doctor_live.models.events import (
    ChangeEvent,
    ChangeEventType,
    DashboardNotification,
    NotificationKind,
)
from doctor_live.models.session import SessionContext
from doctor_live.services.change_feed import APPOINTMENTS_TOPIC, REVIEWS_TOPIC

logger = logging.getLogger(__name__)

AppointmentCallback = Callable[[AppointmentResponse], None]


class ChangeFeedListener:
    """owns the two subscriptions and the tasks that drain them"""

    def __init__(
        self,
        feed,
        session: SessionContext,
        *,
        refresh: Callable[[], Awaitable[None]],
        refresh_metrics: Callable[[], Awaitable[None]],
        notify: Callable[[DashboardNotification], None],
        on_new_appointment: Optional[AppointmentCallback] = None,
        on_appointment_update: Optional[AppointmentCallback] = None,
    ):
        self.feed = feed
        self.session = session
        self.refresh = refresh
        self.refresh_metrics = refresh_metrics
        self.notify = notify
        self.on_new_appointment = on_new_appointment
        self.on_appointment_update = on_appointment_update
        self._subscriptions = []
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self):
        doctor_id = self.session.doctor_id
        if not doctor_id or self._tasks:
            return

        appointments = self.feed.subscribe(APPOINTMENTS_TOPIC, doctor_id)
        reviews = self.feed.subscribe(REVIEWS_TOPIC, doctor_id)
        self._subscriptions = [appointments, reviews]
        self._tasks = [
            asyncio.create_task(self._consume(appointments, self.handle_appointment_event)),
            asyncio.create_task(self._consume(reviews, self.handle_review_event)),
        ]
        logger.info(f"Listening for changes for doctor {doctor_id}")

    async def stop(self):
        subscriptions, self._subscriptions = self._subscriptions, []
        tasks, self._tasks = self._tasks, []

        for task in tasks:
            task.cancel()
        for subscription in subscriptions:
            await subscription.close()

        current = asyncio.current_task()
        pending = [t for t in tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if tasks:
            logger.info(f"Stopped listening for doctor {self.session.doctor_id}")

    async def _consume(self, subscription, handler):
        async for event in subscription:
            try:
                await handler(event)
            except Exception:
                logger.exception(f"Change handler failed for doctor {self.session.doctor_id}")

    def _invoke(self, callback: Optional[AppointmentCallback], record: dict):
        if callback is None:
            return
        try:
            appointment = AppointmentResponse.from_doc(record)
        except ValidationError as e:
            logger.warning(f"Change event carried a malformed appointment: {e}")
            return
        try:
            callback(appointment)
        except Exception:
            logger.exception("Appointment callback raised")

    async def handle_appointment_event(self, event: ChangeEvent):
        logger.info(f"Appointment {event.event_type.value} for doctor {self.session.doctor_id}")

        if event.event_type == ChangeEventType.INSERT:
            self.notify(DashboardNotification.of(NotificationKind.NEW_APPOINTMENT, event.record))
            self._invoke(self.on_new_appointment, event.record)
        elif event.event_type == ChangeEventType.UPDATE:
            self.notify(DashboardNotification.of(NotificationKind.APPOINTMENT_UPDATED, event.record))
            self._invoke(self.on_appointment_update, event.record)

        await self.refresh()

    async def handle_review_event(self, event: ChangeEvent):
        logger.info(f"Review {event.event_type.value} for doctor {self.session.doctor_id}")

        if event.event_type == ChangeEventType.INSERT:
            self.notify(DashboardNotification.of(NotificationKind.NEW_REVIEW, event.record))

        await self.refresh_metrics()
