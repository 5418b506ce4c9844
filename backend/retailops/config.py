# backend/retailops/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retailops.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Writers wait on SQLite's lock instead of failing immediately
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Per-namespace TTLs for the request cache context
    CACHE_TTL_SECONDS = {
        "inventory": _env_int("CACHE_TTL_INVENTORY", 60),
        "default": _env_int("CACHE_TTL_DEFAULT", 300),
    }

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)

    RETRY_ATTEMPTS = _env_int("RETRY_ATTEMPTS", 3)

    # Comma-separated browser origins allowed to call the API
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )
