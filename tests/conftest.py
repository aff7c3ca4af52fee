# shared fixtures for backend tests
# provides mock db, in-memory change feed, sessions, live dashboards, and httpx test clients

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from unittest.mock import MagicMock
from bson import ObjectId

from httpx import AsyncClient, ASGITransport

from doctor_live.main import app
from doctor_live.models.events import ChangeEvent
from doctor_live.models.session import SessionContext
from doctor_live.services.auth_service import create_access_token
from doctor_live.services.db import Database, get_db
from doctor_live.services.live_dashboard import LiveDashboard
from doctor_live.services.registry import DashboardRegistry, get_registry
from doctor_live.dependencies import get_current_user


# test ids
DOCTOR_USER_OID = ObjectId("665f1f77bcf86cd799439001")
DOCTOR_2_USER_OID = ObjectId("665f1f77bcf86cd799439002")
PATIENT_USER_OID = ObjectId("665f1f77bcf86cd799439003")
UNLINKED_DOCTOR_USER_OID = ObjectId("665f1f77bcf86cd799439004")
DOCTOR_OID = ObjectId("665f1f77bcf86cd799439101")
DOCTOR_2_OID = ObjectId("665f1f77bcf86cd799439102")

DOCTOR_USER_ID = str(DOCTOR_USER_OID)
DOCTOR_2_USER_ID = str(DOCTOR_2_USER_OID)
PATIENT_USER_ID = str(PATIENT_USER_OID)
UNLINKED_DOCTOR_USER_ID = str(UNLINKED_DOCTOR_USER_OID)
DOCTOR_ID = str(DOCTOR_OID)
DOCTOR_2_ID = str(DOCTOR_2_OID)

PATIENT_A = "patient-a"
PATIENT_B = "patient-b"
PATIENT_C = "patient-c"


def today() -> date:
    return datetime.now(timezone.utc).date()


def day(offset: int = 0) -> str:
    return (today() + timedelta(days=offset)).isoformat()


# test documents (as they'd appear from mongodb)

def _users():
    return [
        {"_id": DOCTOR_USER_OID, "email": "dr.rahman@doctorlive.com", "name": "Dr. Ayesha Rahman",
         "role": "doctor", "timezone": "UTC"},
        {"_id": DOCTOR_2_USER_OID, "email": "dr.karim@doctorlive.com", "name": "Dr. Karim Uddin",
         "role": "doctor", "timezone": "UTC"},
        {"_id": PATIENT_USER_OID, "email": "nadia.islam@email.com", "name": "Nadia Islam",
         "role": "patient"},
        {"_id": UNLINKED_DOCTOR_USER_OID, "email": "dr.new@doctorlive.com", "name": "Dr. New",
         "role": "doctor"},
    ]


def _doctors():
    return [
        {"_id": DOCTOR_OID, "user_id": DOCTOR_USER_ID, "full_name": "Dr. Ayesha Rahman", "specialty": "Cardiology"},
        {"_id": DOCTOR_2_OID, "user_id": DOCTOR_2_USER_ID, "full_name": "Dr. Karim Uddin", "specialty": "Dermatology"},
    ]


def _patients():
    return [
        {"_id": ObjectId(), "user_id": PATIENT_A, "full_name": "Nadia Islam", "date_of_birth": "1990-04-11"},
        {"_id": ObjectId(), "user_id": PATIENT_B, "full_name": "Karim Hossain", "date_of_birth": "1978-09-02"},
        {"_id": ObjectId(), "user_id": PATIENT_C, "full_name": "Farah Ahmed", "date_of_birth": None},
    ]


def appointment_doc(doctor_id=DOCTOR_ID, patient_id=PATIENT_A, offset=0, time="09:00",
                    status="confirmed", reason=None):
    return {
        "_id": ObjectId(),
        "doctor_id": doctor_id,
        "patient_id": patient_id,
        "appointment_date": day(offset),
        "appointment_time": time,
        "status": status,
        "reason": reason,
    }


def _appointments():
    # patients across the doctor's appointments: A, B, C, A, C
    return [
        appointment_doc(patient_id=PATIENT_A, time="09:00", reason="Chest pain"),
        appointment_doc(patient_id=PATIENT_B, time="14:30", status="pending"),
        appointment_doc(patient_id=PATIENT_C, time="08:15"),
        appointment_doc(patient_id=PATIENT_A, offset=-1, time="10:00", status="completed"),
        appointment_doc(patient_id=PATIENT_C, offset=1, time="11:00", status="pending"),
        appointment_doc(doctor_id=DOCTOR_2_ID, patient_id="patient-x", time="12:00"),
    ]


def _chambers():
    t0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
    return [
        {"_id": ObjectId(), "doctor_id": DOCTOR_ID, "name": "Popular Diagnostic Centre",
         "address": "House 16, Road 2, Dhanmondi", "timing": "10 AM - 1 PM", "days": ["Sunday"],
         "created_at": t0 + timedelta(days=2)},
        {"_id": ObjectId(), "doctor_id": DOCTOR_ID, "name": "Green Life Hospital",
         "address": "32 Green Road", "timing": "5 PM - 9 PM", "days": ["Saturday", "Monday"],
         "created_at": t0},
        {"_id": ObjectId(), "doctor_id": DOCTOR_2_ID, "name": "Skin Care Point",
         "address": "Banani 11", "timing": None, "days": None, "created_at": t0},
    ]


def _reviews():
    return [
        {"_id": ObjectId(), "doctor_id": DOCTOR_ID, "rating": 5, "status": "approved"},
        {"_id": ObjectId(), "doctor_id": DOCTOR_ID, "rating": 4, "status": "approved"},
        {"_id": ObjectId(), "doctor_id": DOCTOR_ID, "rating": 1, "status": "pending"},
        {"_id": ObjectId(), "doctor_id": DOCTOR_2_ID, "rating": 3, "status": "approved"},
    ]


# async cursor mock

class AsyncCursorMock:
    """mock for motor's async cursor: supports async for and chained methods"""

    def __init__(self, data=None):
        self._data = data or []
        self._index = 0

    def sort(self, key, direction=1):
        self._data = sorted(
            self._data,
            key=lambda d: (d.get(key) is None, d.get(key)),
            reverse=direction == -1,
        )
        return self

    def skip(self, n):
        self._data = self._data[n:]
        return self

    def limit(self, n):
        self._data = self._data[:n]
        return self

    def __aiter__(self):
        self._index = 0
        return self

    async def __anext__(self):
        if self._index >= len(self._data):
            raise StopAsyncIteration
        item = self._data[self._index]
        self._index += 1
        return item

    async def to_list(self, length=None):
        if length is not None:
            return self._data[:length]
        return self._data


class MockCollection:
    """mock for a motor collection with async methods"""

    def __init__(self, data=None):
        self._data = data or []
        self.inserted = []

    def find(self, query=None, projection=None):
        # basic query filtering
        results = self._data
        if query:
            results = [d for d in results if self._matches(d, query)]
        return AsyncCursorMock([dict(d) for d in results])

    async def find_one(self, query=None, projection=None):
        if not query:
            return self._data[0] if self._data else None
        for doc in self._data:
            if self._matches(doc, query):
                return doc
        return None

    async def insert_one(self, doc):
        oid = doc.get("_id", ObjectId())
        doc["_id"] = oid
        self._data.append(doc)
        self.inserted.append(doc)
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def count_documents(self, query=None):
        if not query:
            return len(self._data)
        return len([d for d in self._data if self._matches(d, query)])

    async def distinct(self, key, query=None):
        values = []
        for doc in self._data:
            if query and not self._matches(doc, query):
                continue
            if key in doc and doc[key] not in values:
                values.append(doc[key])
        return values

    async def create_index(self, *args, **kwargs):
        return "mock_index"

    def aggregate(self, pipeline):
        # supports $match followed by a single-group $avg, enough for rating stats
        docs = list(self._data)
        for stage in pipeline:
            if "$match" in stage:
                docs = [d for d in docs if self._matches(d, stage["$match"])]
            elif "$group" in stage:
                group = stage["$group"]
                if not docs:
                    return AsyncCursorMock([])
                row = {"_id": group["_id"]}
                for name, spec in group.items():
                    if name == "_id":
                        continue
                    field = spec["$avg"].lstrip("$")
                    values = [d[field] for d in docs if d.get(field) is not None]
                    row[name] = sum(values) / len(values) if values else None
                docs = [row]
        return AsyncCursorMock(docs)

    def _matches(self, doc, query):
        """basic mongodb query matching for tests"""
        for key, value in query.items():
            doc_val = doc.get(key)
            if isinstance(value, dict):
                if "$in" in value:
                    if doc_val not in value["$in"]:
                        return False
                elif "$gte" in value:
                    if doc_val is None or doc_val < value["$gte"]:
                        return False
            elif doc_val != value:
                return False
        return True


class MockDatabase:
    """mock database that mimics the Database class"""

    def __init__(self):
        self.users = MockCollection(_users())
        self.doctors = MockCollection(_doctors())
        self.patients = MockCollection(_patients())
        self.appointments = MockCollection(_appointments())
        self.doctor_chambers = MockCollection(_chambers())
        self.doctor_reviews = MockCollection(_reviews())

    # the real aggregation pipeline, run against the mock collection
    average_rating = Database.average_rating

    async def connect(self):
        pass

    async def close(self):
        pass


# in-memory change feed

class MemorySubscription:
    """queue-backed subscription, mirrors MongoSubscription's iterate/close contract"""

    def __init__(self, topic, doctor_id):
        self.topic = topic
        self.doctor_id = doctor_id
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def push(self, event):
        self._queue.put_nowait(event)

    async def close(self):
        self.closed = True
        self._queue.put_nowait(None)


class InMemoryChangeFeed:
    """server-side filtering emulated: events only reach subscriptions for the same doctor"""

    def __init__(self):
        self.subscriptions: list[MemorySubscription] = []

    def subscribe(self, topic, doctor_id):
        subscription = MemorySubscription(topic, doctor_id)
        self.subscriptions.append(subscription)
        return subscription

    def open_subscriptions(self, topic=None):
        return [
            s for s in self.subscriptions
            if not s.closed and (topic is None or s.topic == topic)
        ]

    def emit(self, topic, doctor_id, event_type, record=None) -> int:
        delivered = 0
        for subscription in self.open_subscriptions(topic):
            if subscription.doctor_id == doctor_id:
                subscription.push(ChangeEvent(event_type=event_type, record=record or {}))
                delivered += 1
        return delivered


async def wait_until(predicate, timeout=2.0):
    """poll until predicate() is true or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def mock_db():
    """create a fresh mock database for each test"""
    return MockDatabase()


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
def session():
    return SessionContext(user_id=DOCTOR_USER_ID, role="doctor", doctor_id=DOCTOR_ID)


@pytest.fixture
def session_2():
    return SessionContext(user_id=DOCTOR_2_USER_ID, role="doctor", doctor_id=DOCTOR_2_ID)


@pytest.fixture
def empty_session():
    """a doctor user without a practitioner record"""
    return SessionContext(user_id=UNLINKED_DOCTOR_USER_ID, role="doctor", doctor_id=None)


@pytest_asyncio.fixture
async def dashboard(mock_db, feed, session):
    """unstarted live dashboard with a long poll interval"""
    dash = LiveDashboard(mock_db, feed, session, poll_interval=3600, query_timeout=1.0)
    yield dash
    await dash.close()


@pytest.fixture
def registry(mock_db, feed):
    return DashboardRegistry(mock_db, feed, poll_interval=3600, query_timeout=1.0)


def _doctor_dict():
    """return doctor user dict as get_current_user would return"""
    doc = _users()[0]
    doc["id"] = str(doc.pop("_id"))
    return doc


def _patient_dict():
    doc = _users()[2]
    doc["id"] = str(doc.pop("_id"))
    return doc


def _unlinked_doctor_dict():
    doc = _users()[3]
    doc["id"] = str(doc.pop("_id"))
    return doc


@pytest.fixture
def doctor_token():
    """jwt access token for the test doctor"""
    return create_access_token({"sub": DOCTOR_USER_ID, "role": "doctor"})


@pytest.fixture
def patient_token():
    return create_access_token({"sub": PATIENT_USER_ID, "role": "patient"})


@pytest.fixture
def override_app(mock_db, registry):
    """point the app at the mock db and test registry"""

    async def override_get_db():
        return mock_db

    async def override_get_registry():
        return registry

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = override_get_registry
    yield app
    app.dependency_overrides.clear()


async def _client_as(user_factory):
    async def override_get_current_user():
        return user_factory()

    app.dependency_overrides[get_current_user] = override_get_current_user
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def client(override_app):
    """httpx async test client with mocked dependencies"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def doctor_client(override_app):
    """client authenticated as a doctor"""
    async with await _client_as(_doctor_dict) as ac:
        yield ac


@pytest_asyncio.fixture
async def unlinked_doctor_client(override_app):
    """client authenticated as a doctor without a practitioner record"""
    async with await _client_as(_unlinked_doctor_dict) as ac:
        yield ac


@pytest_asyncio.fixture
async def patient_client(override_app):
    """client authenticated as a patient"""
    async with await _client_as(_patient_dict) as ac:
        yield ac
