"""
Supervision Scheduler — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Backend provider: "http" (platform REST API) | "sqlite" (local store)
    BACKEND_PROVIDER: str = "http"

    # REST API (only needed when BACKEND_PROVIDER=http)
    BACKEND_URL: str = "http://127.0.0.1:8001"
    BACKEND_EMAIL: str = ""
    BACKEND_PASSWORD: str = ""
    BACKEND_TOKEN: str = ""      # pre-issued token; skips /login
    BACKEND_TIMEOUT_SECONDS: float = 10.0

    # SQLite (only needed when BACKEND_PROVIDER=sqlite)
    DATABASE_PATH: str = "data/scheduler.db"

    # Sweep
    SWEEP_INTERVAL_SECONDS: int = 300
    NOTIFY_PATIENTS: bool = False

    LOG_LEVEL: str = "INFO"

    @field_validator("BACKEND_PROVIDER", "LOG_LEVEL", mode="before")
    @classmethod
    def normalize_choice(cls, v: str) -> str:
        return str(v).strip()

    @field_validator("SWEEP_INTERVAL_SECONDS", mode="before")
    @classmethod
    def parse_interval(cls, v: str | int) -> int:
        interval = int(v)
        if interval <= 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be positive")
        return interval

    @field_validator("NOTIFY_PATIENTS", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    provider = os.getenv("BACKEND_PROVIDER", "http").lower()
    token = os.getenv("BACKEND_TOKEN", "")
    email = os.getenv("BACKEND_EMAIL", "")
    password = os.getenv("BACKEND_PASSWORD", "")

    if provider == "http" and not token and not (email and password):
        print(
            "ERROR: set BACKEND_TOKEN or BACKEND_EMAIL/BACKEND_PASSWORD in .env",
            file=sys.stderr,
        )
        sys.exit(1)

    return Settings(
        BACKEND_PROVIDER=provider,
        BACKEND_URL=os.getenv("BACKEND_URL", "http://127.0.0.1:8001"),
        BACKEND_EMAIL=email,
        BACKEND_PASSWORD=password,
        BACKEND_TOKEN=token,
        BACKEND_TIMEOUT_SECONDS=os.getenv("BACKEND_TIMEOUT_SECONDS", "10"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/scheduler.db"),
        SWEEP_INTERVAL_SECONDS=os.getenv("SWEEP_INTERVAL_SECONDS", "300"),
        NOTIFY_PATIENTS=os.getenv("NOTIFY_PATIENTS", "false"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
