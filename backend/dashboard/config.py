# backend/dashboard/config.py
from __future__ import annotations
import os
from datetime import timedelta


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/dashboard.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///dashboard.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Credential signing. No default: create_app refuses to start without it.
    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_SECRET_MIN_LENGTH = int(os.environ.get("JWT_SECRET_MIN_LENGTH", "32"))
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_IN = timedelta(days=int(os.environ.get("JWT_EXPIRES_IN_DAYS", "7")))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Front-end origins allowed by the CORS hook
    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }
