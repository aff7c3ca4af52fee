# seed script: demo doctor, patients, appointments, chambers and reviews
# run once: python -m doctor_live.seed

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from pymongo.errors import OperationFailure

from doctor_live.services.db import db
from doctor_live.services.auth_service import create_access_token
from doctor_live.services.change_feed import APPOINTMENTS_TOPIC, REVIEWS_TOPIC

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

DOCTOR_EMAIL = "dr.rahman@doctorlive.com"

PATIENTS = [
    {"email": "nadia.islam@email.com", "full_name": "Nadia Islam", "date_of_birth": "1990-04-11"},
    {"email": "karim.hossain@email.com", "full_name": "Karim Hossain", "date_of_birth": "1978-09-02"},
    {"email": "farah.ahmed@email.com", "full_name": "Farah Ahmed", "date_of_birth": None},
]

# (day offset, time, patient index, status, reason)
APPOINTMENTS = [
    (-1, "10:00", 0, "completed", "Follow-up"),
    (0, "09:00", 0, "confirmed", "Chest pain"),
    (0, "14:30", 1, "pending", "Routine check"),
    (0, "08:15", 2, "confirmed", None),
    (1, "11:00", 1, "pending", "Blood test review"),
]


async def _ensure_user(email: str, doc: dict) -> str:
    existing = await db.users.find_one({"email": email})
    if existing:
        logger.info(f"User already exists: {email}")
        return str(existing["_id"])
    result = await db.users.insert_one({"email": email, **doc})
    logger.info(f"Created user: {email}")
    return str(result.inserted_id)


async def seed():
    """create a doctor with today's schedule, skips rows that already exist"""
    await db.connect()
    now = datetime.now(timezone.utc)

    doctor_user_id = await _ensure_user(DOCTOR_EMAIL, {
        "name": "Dr. Ayesha Rahman",
        "role": "doctor",
        "timezone": "UTC",
        "created_at": now.isoformat(),
    })

    doctor = await db.doctors.find_one({"user_id": doctor_user_id})
    if doctor:
        doctor_id = str(doctor["_id"])
    else:
        result = await db.doctors.insert_one({
            "user_id": doctor_user_id,
            "full_name": "Dr. Ayesha Rahman",
            "specialty": "Cardiology",
            "created_at": now,
        })
        doctor_id = str(result.inserted_id)
        logger.info(f"Created practitioner record (id: {doctor_id})")

    patient_ids = []
    for p in PATIENTS:
        user_id = await _ensure_user(p["email"], {"name": p["full_name"], "role": "patient", "created_at": now.isoformat()})
        await db.patients.update_one(
            {"user_id": user_id},
            {"$set": {"user_id": user_id, "full_name": p["full_name"], "date_of_birth": p["date_of_birth"]}},
            upsert=True,
        )
        patient_ids.append(user_id)

    today = now.date()
    created = 0
    for offset, time, patient_index, status, reason in APPOINTMENTS:
        day = (today + timedelta(days=offset)).isoformat()
        query = {"doctor_id": doctor_id, "appointment_date": day, "appointment_time": time}
        if await db.appointments.find_one(query):
            continue
        await db.appointments.insert_one({
            **query,
            "patient_id": patient_ids[patient_index],
            "status": status,
            "reason": reason,
            "created_at": now,
        })
        created += 1
    logger.info(f"Created {created} appointments")

    if await db.doctor_chambers.count_documents({"doctor_id": doctor_id}) == 0:
        await db.doctor_chambers.insert_one({
            "doctor_id": doctor_id, "name": "Green Life Hospital", "address": "32 Bir Uttam KM Shafiullah Sarak, Dhaka",
            "timing": "5 PM - 9 PM", "days": ["Saturday", "Monday", "Wednesday"], "created_at": now,
        })
        await db.doctor_chambers.insert_one({
            "doctor_id": doctor_id, "name": "Popular Diagnostic Centre", "address": "House 16, Road 2, Dhanmondi, Dhaka",
            "timing": "10 AM - 1 PM", "days": ["Sunday", "Tuesday"], "created_at": now + timedelta(seconds=1),
        })
        logger.info("Created chambers")

    if await db.doctor_reviews.count_documents({"doctor_id": doctor_id}) == 0:
        for rating, status in [(5, "approved"), (4, "approved"), (2, "pending")]:
            await db.doctor_reviews.insert_one({
                "doctor_id": doctor_id, "rating": rating, "status": status, "created_at": now,
            })
        logger.info("Created reviews")

    # indexes backing the dashboard queries
    await db.appointments.create_index([("doctor_id", 1), ("appointment_date", 1)])
    await db.doctor_chambers.create_index([("doctor_id", 1), ("created_at", 1)])
    await db.doctor_reviews.create_index([("doctor_id", 1), ("status", 1)])
    await db.patients.create_index("user_id", unique=True)
    await db.doctors.create_index("user_id", unique=True)
    await db.users.create_index("email", unique=True)
    logger.info("Created indexes")

    # pre-images let change streams scope deletes to a doctor (mongodb 6.0+)
    for name in (APPOINTMENTS_TOPIC, REVIEWS_TOPIC):
        try:
            await db.db.command("collMod", name, changeStreamPreAndPostImages={"enabled": True})
        except OperationFailure as e:
            logger.warning(f"Could not enable pre-images on {name}, deletes will only show on the next poll: {e}")
    logger.info("Enabled change stream pre-images")

    token = create_access_token({"sub": doctor_user_id, "role": "doctor"}, timedelta(days=1))
    logger.info(f"Seed complete! Demo doctor token (24h): {token}")
    await db.close()


if __name__ == "__main__":
    asyncio.run(seed())
