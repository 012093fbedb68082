# backend/theaterpos/config.py
from __future__ import annotations
import os


class ConfigurationError(RuntimeError):
    """Raised when the process is missing required configuration."""


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Required. create_app() refuses to start when this is empty.
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Object storage (uploads are handled by an external collaborator)
    GCS_BUCKET_NAME = os.environ.get("GCS_BUCKET_NAME")
    GCS_CREDENTIALS_FILE = os.environ.get("GCS_CREDENTIALS_FILE")

    # Payment gateway credentials
    RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET")

    # Credential hashing work factor; production never goes below 12
    BCRYPT_LOG_ROUNDS = _env_int("BCRYPT_LOG_ROUNDS", 12)

    # OTP verification
    OTP_LENGTH = _env_int("OTP_LENGTH", 6)
    OTP_TTL_SECONDS = _env_int("OTP_TTL_SECONDS", 600)
    OTP_MAX_ATTEMPTS = _env_int("OTP_MAX_ATTEMPTS", 5)
    OTP_ISSUE_LIMIT = _env_int("OTP_ISSUE_LIMIT", 5)
    OTP_ISSUE_WINDOW_SECONDS = _env_int("OTP_ISSUE_WINDOW_SECONDS", 900)
    OTP_DEMO_MODE = _env_bool("OTP_DEMO_MODE")
    OTP_REAPER_INTERVAL_SECONDS = _env_int("OTP_REAPER_INTERVAL_SECONDS", 60)
    # Callable(phone_number, code, purpose); None logs that SMS is not configured
    OTP_SENDER = None

    # Hard deadline for login, OTP verification and stock writes
    OPERATION_DEADLINE_SECONDS = _env_int("OPERATION_DEADLINE_SECONDS", 30)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
        ).split(",")
        if origin.strip()
    )
