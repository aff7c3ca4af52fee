# async mongodb client for the backend api
# uses motor for non-blocking operations

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from doctor_live.config import settings

logger = logging.getLogger(__name__)


class Database:
    """async mongodb connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """establish connection to mongodb"""
        if self.client is not None:
            return

        logger.info(f"Connecting to MongoDB database: {settings.MONGODB_DATABASE}")
        self.client = AsyncIOMotorClient(settings.MONGODB_URI)
        self.db = self.client[settings.MONGODB_DATABASE]

        # verify connection
        await self.client.admin.command("ping")
        logger.info("MongoDB connection established")

    async def close(self):
        """close mongodb connection"""
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed")

    # collection accessors

    @property
    def users(self):
        return self.db["users"]

    @property
    def doctors(self):
        return self.db["doctors"]

    @property
    def patients(self):
        return self.db["patients"]

    @property
    def appointments(self):
        return self.db["appointments"]

    @property
    def doctor_chambers(self):
        return self.db["doctor_chambers"]

    @property
    def doctor_reviews(self):
        return self.db["doctor_reviews"]

    async def average_rating(self, doctor_id: str) -> float:
        """mean rating over a doctor's approved reviews, 0.0 when there are none"""
        pipeline = [
            {"$match": {"doctor_id": doctor_id, "status": "approved"}},
            {"$group": {"_id": None, "avg": {"$avg": "$rating"}}},
        ]
        result = await self.doctor_reviews.aggregate(pipeline).to_list(length=1)
        if not result or result[0].get("avg") is None:
            return 0.0
        return round(float(result[0]["avg"]), 1)


# singleton instance
db = Database()


async def get_db() -> Database:
    """dependency injection for database access"""
    return db
