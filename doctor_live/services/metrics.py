# metrics aggregator: scalar stats for the doctor overview
# today's appointment count, unique patients, approved review count, average rating

import asyncio
import logging
from typing import Optional

from doctor_live.config import settings
from doctor_live.models.appointment import AppointmentStatus
from doctor_live.models.dashboard import DashboardStats
from doctor_live.models.review import ReviewStatus
from doctor_live.models.session import SessionContext
from doctor_live.services.db import Database
from doctor_live.services.query_guard import guarded

logger = logging.getLogger(__name__)


class MetricsAggregator:
    """computes DashboardStats for the session's doctor"""

    def __init__(self, db: Database, session: SessionContext, timeout: Optional[float] = None):
        self.db = db
        self.session = session
        self.timeout = timeout if timeout is not None else settings.DASHBOARD_QUERY_TIMEOUT_SECONDS

    async def count_today(self, today: str) -> int:
        # rows with an unknown status never reach the schedule, so they are not counted either
        return await self.db.appointments.count_documents({
            "doctor_id": self.session.doctor_id,
            "appointment_date": today,
            "status": {"$in": [s.value for s in AppointmentStatus]},
        })

    async def count_unique_patients(self) -> int:
        # across all of the doctor's appointments, not only today's
        patient_ids = await self.db.appointments.distinct(
            "patient_id", {"doctor_id": self.session.doctor_id}
        )
        return len(set(patient_ids))

    async def count_approved_reviews(self) -> int:
        return await self.db.doctor_reviews.count_documents(
            {"doctor_id": self.session.doctor_id, "status": ReviewStatus.APPROVED.value}
        )

    async def average_rating(self) -> float:
        return await self.db.average_rating(self.session.doctor_id)

    async def aggregate(self) -> Optional[DashboardStats]:
        """run the four queries concurrently. returns None when there is no doctor id."""
        doctor_id = self.session.doctor_id
        if not doctor_id:
            return None

        today = self.session.today()

        def guard(query, default, label):
            return guarded(query, default, label=label, doctor_id=doctor_id, timeout=self.timeout)

        today_count, total_patients, review_count, avg_rating = await asyncio.gather(
            guard(self.count_today(today), 0, "today appointment count"),
            guard(self.count_unique_patients(), 0, "unique patient count"),
            guard(self.count_approved_reviews(), 0, "approved review count"),
            guard(self.average_rating(), 0.0, "average rating"),
        )

        return DashboardStats(
            today_appointments=today_count or 0,
            total_patients=total_patients or 0,
            avg_rating=float(avg_rating or 0.0),
            review_count=review_count or 0,
        )
