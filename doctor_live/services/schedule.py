# schedule fetcher: today's appointments joined with patient identity
# patients are loaded in one batch for the distinct ids on the schedule

import logging
from typing import Optional

from pydantic import ValidationError

from doctor_live.config import settings
from doctor_live.models.appointment import AppointmentResponse, PatientIdentity
from doctor_live.models.session import SessionContext
from doctor_live.services.db import Database
from doctor_live.services.query_guard import guarded

logger = logging.getLogger(__name__)

APPOINTMENT_FIELDS = {
    "patient_id": 1,
    "appointment_date": 1,
    "appointment_time": 1,
    "status": 1,
    "reason": 1,
}


class ScheduleFetcher:
    def __init__(self, db: Database, session: SessionContext, timeout: Optional[float] = None):
        self.db = db
        self.session = session
        self.timeout = timeout if timeout is not None else settings.DASHBOARD_QUERY_TIMEOUT_SECONDS

    async def _today_rows(self, today: str) -> list[dict]:
        cursor = self.db.appointments.find(
            {"doctor_id": self.session.doctor_id, "appointment_date": today},
            APPOINTMENT_FIELDS,
        ).sort("appointment_time", 1)
        return await cursor.to_list(length=None)

    async def _patients_by_id(self, patient_ids: list[str]) -> dict[str, PatientIdentity]:
        cursor = self.db.patients.find(
            {"user_id": {"$in": patient_ids}},
            {"user_id": 1, "full_name": 1, "date_of_birth": 1},
        )
        patients = {}
        async for doc in cursor:
            try:
                patients[doc["user_id"]] = PatientIdentity(
                    full_name=doc.get("full_name", ""),
                    date_of_birth=doc.get("date_of_birth"),
                )
            except ValidationError as e:
                # only this patient's appointments lose their identity
                logger.warning(f"Skipping malformed patient {doc.get('user_id')}: {e}")
        return patients

    async def fetch(self) -> list[AppointmentResponse]:
        """today's appointments ordered by time, each with its patient when found"""
        doctor_id = self.session.doctor_id
        if not doctor_id:
            return []

        rows = await guarded(
            self._today_rows(self.session.today()), [],
            label="today's appointments", doctor_id=doctor_id, timeout=self.timeout,
        )
        if not rows:
            return []

        patient_ids = list(dict.fromkeys(str(row.get("patient_id", "")) for row in rows))
        patients = await guarded(
            self._patients_by_id(patient_ids), {},
            label="patient lookup", doctor_id=doctor_id, timeout=self.timeout,
        )

        appointments = []
        for row in rows:
            try:
                appointments.append(
                    AppointmentResponse.from_doc(row, patients.get(str(row.get("patient_id", ""))))
                )
            except ValidationError as e:
                logger.warning(f"Skipping malformed appointment {row.get('_id')}: {e}")
        return appointments
