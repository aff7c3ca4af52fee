# fastapi dependency injection
# provides get_current_user, role-based access control, and the doctor's session context

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from bson import ObjectId

from doctor_live.models.session import SessionContext
from doctor_live.services.auth_service import decode_token
from doctor_live.services.db import Database, get_db

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def user_from_token(token: str, db: Database) -> Optional[dict]:
    """resolve an access token to its user document, none if invalid"""
    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    try:
        user = await db.users.find_one({"_id": ObjectId(user_id)})
    except Exception:
        user = None

    if not user:
        return None

    # convert _id to string
    user = {k: v for k, v in user.items() if k != "_id"} | {"id": str(user["_id"])}
    return user


async def build_session(user: dict, db: Database) -> SessionContext:
    """session for a user, resolving the practitioner record for doctors"""
    doctor_id = None
    if user.get("role") == "doctor":
        doctor = await db.doctors.find_one({"user_id": user["id"]})
        if doctor:
            doctor_id = str(doctor["_id"])
        else:
            logger.info(f"Doctor user {user['id']} has no practitioner record")

    return SessionContext(
        user_id=user["id"],
        role=user.get("role", ""),
        doctor_id=doctor_id,
        timezone=user.get("timezone") or "UTC",
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Database = Depends(get_db),
) -> dict:
    """extract and validate the current user from the jwt bearer token"""
    user = await user_from_token(credentials.credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user


def require_role(role: str):
    """factory for role-based access control dependency"""

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {role}",
            )
        return current_user

    return role_checker


async def get_session(
    current_user: dict = Depends(require_role("doctor")),
    db: Database = Depends(get_db),
) -> SessionContext:
    """session context for the authenticated doctor"""
    return await build_session(current_user, db)
