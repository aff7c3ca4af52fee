# session context: explicit replacement for an ambient auth session
# built once per request/connection and passed into every dashboard component

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SessionContext(BaseModel):
    user_id: str
    role: str
    # practitioner record id, distinct from the login identity
    doctor_id: Optional[str] = None
    timezone: str = "UTC"

    model_config = {"frozen": True}

    def today(self) -> str:
        """caller's local calendar date as YYYY-MM-DD"""
        try:
            tz = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {self.timezone!r}, using UTC")
            tz = ZoneInfo("UTC")
        return datetime.now(tz).date().isoformat()
