# change feed: row-level mutation streams scoped to one doctor
# mongodb change streams with the doctor filter pushed down to the server

import asyncio
import logging
from typing import AsyncIterator, Optional

from pymongo.errors import PyMongoError

from doctor_live.config import settings
from doctor_live.models.events import ChangeEvent, ChangeEventType
from doctor_live.services.db import Database

logger = logging.getLogger(__name__)

APPOINTMENTS_TOPIC = "appointments"
REVIEWS_TOPIC = "doctor_reviews"

WATCHED_OPERATIONS = ["insert", "update", "replace", "delete"]


def change_to_event(change: dict) -> Optional[ChangeEvent]:
    """map a raw change stream document to a ChangeEvent, None for other operations"""
    op = change.get("operationType")
    if op == "replace":
        op = ChangeEventType.UPDATE.value
    if op not in {e.value for e in ChangeEventType}:
        return None

    # deletes carry no fullDocument, only the pre-image when the collection records one
    record = dict(change.get("fullDocument") or change.get("fullDocumentBeforeChange") or {})
    if "_id" in record:
        record["id"] = str(record.pop("_id"))
    elif change.get("documentKey"):
        record["id"] = str(change["documentKey"].get("_id"))
    return ChangeEvent(event_type=op, record=record)


class MongoSubscription:
    """async iterator over one topic's change events. close() ends it."""

    def __init__(self, db: Database, topic: str, doctor_id: str, retry_seconds: float):
        self.db = db
        self.topic = topic
        self.doctor_id = doctor_id
        self.retry_seconds = retry_seconds
        # deletes are scoped by their pre-image (collections need changeStreamPreAndPostImages)
        self.pipeline = [
            {"$match": {
                "operationType": {"$in": WATCHED_OPERATIONS},
                "$or": [
                    {"fullDocument.doctor_id": doctor_id},
                    {"fullDocumentBeforeChange.doctor_id": doctor_id},
                ],
            }},
        ]
        self._stream = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        collection = self.db.db[self.topic]
        while not self._closed:
            try:
                async with collection.watch(
                    self.pipeline,
                    full_document="updateLookup",
                    full_document_before_change="whenAvailable",
                ) as stream:
                    self._stream = stream
                    logger.info(f"Change stream open: {self.topic} (doctor {self.doctor_id})")
                    async for change in stream:
                        event = change_to_event(change)
                        if event is not None:
                            yield event
            except PyMongoError as e:
                if self._closed:
                    break
                logger.warning(
                    f"Change stream {self.topic} failed for doctor {self.doctor_id}: {e}; "
                    f"retrying in {self.retry_seconds}s"
                )
                await asyncio.sleep(self.retry_seconds)
            finally:
                self._stream = None

    async def close(self):
        self._closed = True
        if self._stream is not None:
            await self._stream.close()
        logger.info(f"Change stream closed: {self.topic} (doctor {self.doctor_id})")


class MongoChangeFeed:
    """subscribe(topic, doctor_id) factory over the database's change streams"""

    def __init__(self, db: Database, retry_seconds: Optional[float] = None):
        self.db = db
        self.retry_seconds = retry_seconds if retry_seconds is not None else settings.CHANGE_FEED_RETRY_SECONDS

    def subscribe(self, topic: str, doctor_id: str) -> MongoSubscription:
        return MongoSubscription(self.db, topic, doctor_id, self.retry_seconds)
