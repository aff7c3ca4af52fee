# dashboard router: live practice overview for the signed-in doctor
# rest snapshot + refresh, and a websocket that pushes snapshots and change notifications

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from doctor_live.dependencies import build_session, get_session, user_from_token
from doctor_live.models.dashboard import DashboardState
from doctor_live.models.session import SessionContext
from doctor_live.services.db import Database, get_db
from doctor_live.services.registry import DashboardRegistry, get_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/live", response_model=DashboardState)
async def get_live_dashboard(
    session: SessionContext = Depends(get_session),
    registry: DashboardRegistry = Depends(get_registry),
):
    """current stats, today's appointments and chambers for the doctor"""
    async with registry.view(session) as dashboard:
        return dashboard.state()


@router.post("/live/refresh", response_model=DashboardState)
async def refresh_live_dashboard(
    session: SessionContext = Depends(get_session),
    registry: DashboardRegistry = Depends(get_registry),
):
    """force a full refresh and return the result"""
    async with registry.view(session) as dashboard:
        await dashboard.refresh()
        return dashboard.state()


def _message(kind: str, payload) -> dict:
    return {"type": kind, "data": payload.model_dump(mode="json", by_alias=True)}


@router.websocket("/live/ws")
async def live_dashboard_socket(
    websocket: WebSocket,
    token: Optional[str] = None,
    db: Database = Depends(get_db),
    registry: DashboardRegistry = Depends(get_registry),
):
    """push channel: a snapshot on connect and after every refresh, plus notifications.
    clients may send "refresh" to force a refresh."""
    user = await user_from_token(token, db) if token else None
    if user is None or user.get("role") != "doctor":
        logger.warning("Dashboard socket rejected: invalid token or role")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = await build_session(user, db)
    await websocket.accept()

    outbox: asyncio.Queue = asyncio.Queue()

    async def pump():
        while True:
            kind, payload = await outbox.get()
            await websocket.send_json(_message(kind, payload))

    dashboard = await registry.acquire(session)
    dispose = dashboard.subscribe(lambda kind, payload: outbox.put_nowait((kind, payload)))
    outbox.put_nowait(("snapshot", dashboard.state()))
    sender = asyncio.create_task(pump())
    logger.info(f"Dashboard socket connected for doctor {session.doctor_id}")

    try:
        while True:
            text = await websocket.receive_text()
            if text.strip().lower() == "refresh":
                await dashboard.refresh()
    except WebSocketDisconnect:
        logger.info(f"Dashboard socket disconnected for doctor {session.doctor_id}")
    finally:
        dispose()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        await registry.release(dashboard)
