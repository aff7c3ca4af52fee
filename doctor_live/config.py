# backend configuration
# loads env vars for mongodb, jwt, and live dashboard timings

import os
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# load .env from project root
load_dotenv(Path(__file__).parent.parent / ".env")


class Settings(BaseSettings):
    # mongodb (replica set required for change streams)
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "doctor_live_db")

    # jwt auth
    JWT_SECRET: str = os.getenv("JWT_SECRET", "doctorlive-dev-secret-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # cors
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # live dashboard
    DASHBOARD_POLL_INTERVAL_SECONDS: float = 30.0
    DASHBOARD_QUERY_TIMEOUT_SECONDS: float = 10.0
    CHANGE_FEED_RETRY_SECONDS: float = 5.0

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
