from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parents[2]
DEFAULT_JWT_SECRET = "dev-jwt-secret-key-change-me-at-least-32-bytes"


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    cleaned = raw.strip()
    return cleaned or default


def env_origins() -> list[str]:
    raw_origins = os.getenv("FRONTEND_ORIGINS")
    if raw_origins:
        origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        if origins:
            return origins

    raw_origin = os.getenv("FRONTEND_ORIGIN")
    if raw_origin:
        origin = raw_origin.strip()
        if origin:
            return [origin]

    return ["http://localhost:5173", "http://127.0.0.1:5173"]


class Config:
    ENV = env_str("APP_ENV", "development")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'fileease.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=env_int("ACCESS_TOKEN_EXPIRES_MINUTES", 15))

    FRONTEND_ORIGINS = env_origins()
    STORAGE_ROOT = os.getenv("STORAGE_ROOT", str(BASE_DIR / "storage"))
    MAX_UPLOAD_SIZE_BYTES = env_int("MAX_UPLOAD_SIZE_BYTES", 25 * 1024 * 1024)

    # 32 random bytes -> 256 bits per share token.
    SHARE_TOKEN_BYTES = max(16, env_int("SHARE_TOKEN_BYTES", 32))
    TOKEN_MINT_MAX_ATTEMPTS = max(1, env_int("TOKEN_MINT_MAX_ATTEMPTS", 5))
    DEFAULT_SHARE_TTL_SECONDS = env_int("DEFAULT_SHARE_TTL_SECONDS", 24 * 3600)
    MAX_SHARE_TTL_SECONDS = env_int("MAX_SHARE_TTL_SECONDS", 3650 * 24 * 3600)
    PURGE_RETENTION_DAYS = max(0, env_int("PURGE_RETENTION_DAYS", 30))

    MAX_CONTENT_LENGTH = env_int("MAX_CONTENT_LENGTH", 1024 * 1024 * 1024)
