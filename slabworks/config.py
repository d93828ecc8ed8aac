# slabworks/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite for local work; production points DATABASE_URL at PostgreSQL
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///slabworks.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Stand grid provisioned by `flask stands init`
    STAND_ROWS = int(os.environ.get("STAND_ROWS", "4"))
    STAND_POSITIONS = int(os.environ.get("STAND_POSITIONS", "14"))
    STAND_MAX_CAPACITY = int(os.environ.get("STAND_MAX_CAPACITY", "200"))

    # When on, only blocks that passed polishing may be stocked
    STOCK_REQUIRES_FINISHED_BLOCK = _env_bool("STOCK_REQUIRES_FINISHED_BLOCK", False)

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
