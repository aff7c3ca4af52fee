# doctor live dashboard api
# fastapi app with async mongodb, jwt auth, and change-stream driven dashboards

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from doctor_live.config import settings
from doctor_live.services.db import db
from doctor_live.services.registry import registry
from doctor_live.routers import dashboard

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """startup: connect to mongodb. shutdown: close live dashboards, then the connection."""
    logger.info("Starting doctor live backend...")
    await db.connect()
    logger.info("Doctor live backend ready")
    yield
    logger.info("Shutting down doctor live backend...")
    await registry.close()
    await db.close()


app = FastAPI(
    title="Doctor Live API",
    description="Live practice dashboard for doctors: stats, today's schedule and chambers kept fresh by change streams",
    version="0.1.0",
    lifespan=lifespan,
)

# cors: allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# register routers
app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    """basic health check endpoint"""
    return {"status": "ok", "service": "doctor-live-api"}
