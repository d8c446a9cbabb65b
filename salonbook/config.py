"""Application settings read from the environment."""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///salonbook.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens expire after 24 hours unless overridden.
    TOKEN_MAX_AGE = _env_int("TOKEN_MAX_AGE", 86400)

    # Booking rules
    BUSINESS_OPEN_HOUR = _env_int("BUSINESS_OPEN_HOUR", 8)
    BUSINESS_CLOSE_HOUR = _env_int("BUSINESS_CLOSE_HOUR", 20)
    NOTES_MAX_LENGTH = _env_int("NOTES_MAX_LENGTH", 500)

    # Email relay
    SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = _env_int("SMTP_PORT", 587)
    SMTP_USER = os.environ.get("SMTP_USER", "")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "")
    RELAY_PORT = _env_int("RELAY_PORT", 3001)

    # Image hosting
    CLOUDINARY_CLOUD_NAME = os.environ.get("CLOUDINARY_CLOUD_NAME", "")
    CLOUDINARY_API_KEY = os.environ.get("CLOUDINARY_API_KEY", "")
    CLOUDINARY_API_SECRET = os.environ.get("CLOUDINARY_API_SECRET", "")
    CLOUDINARY_UPLOAD_PRESET = os.environ.get("CLOUDINARY_UPLOAD_PRESET", "salonbook")
    CLOUDINARY_FOLDER = os.environ.get("CLOUDINARY_FOLDER", "salonbook")
    CLOUDINARY_SIGNER_URL = os.environ.get("CLOUDINARY_SIGNER_URL", "")
    SIGNER_LAN_HOST = os.environ.get("SIGNER_LAN_HOST", "")
