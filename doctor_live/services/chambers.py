# chamber fetcher: a doctor's practice locations, oldest first

import logging
from typing import Optional

from pydantic import ValidationError

from doctor_live.config import settings
from doctor_live.models.chamber import ChamberResponse
from doctor_live.models.session import SessionContext
from doctor_live.services.db import Database
from doctor_live.services.query_guard import guarded

logger = logging.getLogger(__name__)


class ChamberFetcher:
    def __init__(self, db: Database, session: SessionContext, timeout: Optional[float] = None):
        self.db = db
        self.session = session
        self.timeout = timeout if timeout is not None else settings.DASHBOARD_QUERY_TIMEOUT_SECONDS

    async def _rows(self) -> list[dict]:
        cursor = self.db.doctor_chambers.find(
            {"doctor_id": self.session.doctor_id},
            {"name": 1, "address": 1, "timing": 1, "days": 1},
        ).sort("created_at", 1)
        return await cursor.to_list(length=None)

    async def fetch(self) -> list[ChamberResponse]:
        doctor_id = self.session.doctor_id
        if not doctor_id:
            return []

        rows = await guarded(
            self._rows(), [], label="chambers", doctor_id=doctor_id, timeout=self.timeout,
        )
        chambers = []
        for row in rows:
            try:
                chambers.append(ChamberResponse.from_doc(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed chamber {row.get('_id')}: {e}")
        return chambers
