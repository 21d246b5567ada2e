# backend/storepos/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance folder by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storepos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for a single storage round-trip (busy wait / statement timeout)
    STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "5"))
    STORAGE_RETRY_ATTEMPTS = int(os.environ.get("STORAGE_RETRY_ATTEMPTS", "3"))

    # Invoice numbers: PREFIX-NNN
    INVOICE_SEQUENCE_NAME = "invoiceNumber"
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "S")
    INVOICE_DIGITS = int(os.environ.get("INVOICE_DIGITS", "3"))

    # 1 point per 100 currency units (amounts are stored in cents)
    LOYALTY_POINT_UNIT_CENTS = int(os.environ.get("LOYALTY_POINT_UNIT_CENTS", "10000"))

    # Media host (Cloudinary-compatible). Unset cloud name disables uploads.
    MEDIA_CLOUD_NAME = os.environ.get("CLOUDINARY_CLOUD_NAME")
    MEDIA_API_KEY = os.environ.get("CLOUDINARY_API_KEY")
    MEDIA_API_SECRET = os.environ.get("CLOUDINARY_API_SECRET")
    MEDIA_FOLDER = os.environ.get("MEDIA_FOLDER", "storepos")
    MEDIA_MAX_UPLOAD_BYTES = 5 * 1024 * 1024

    # Comma-separated browser origins allowed to call the API
    CORS_ALLOWED_ORIGINS = os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    )


def engine_options_for(database_uri: str, timeout_seconds: float) -> dict:
    """SQLAlchemy engine options that bound each storage call."""
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    if database_uri.startswith("postgresql"):
        timeout_ms = int(timeout_seconds * 1000)
        return {
            "pool_pre_ping": True,
            "connect_args": {"options": f"-c statement_timeout={timeout_ms}"},
        }
    return {"pool_pre_ping": True}
