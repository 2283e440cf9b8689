# backend/pantry/config.py
from __future__ import annotations
import os


def _csv(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    PANTRY_ENV = os.environ.get("PANTRY_ENV", "development")

    # Hide raw exception messages from clients outside development
    EXPOSE_ERROR_DETAILS = PANTRY_ENV != "production"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # SQLite DB stored in backend/instance/pantry.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pantry.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session routing cache and order event channel
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT = float(os.environ.get("REDIS_SOCKET_TIMEOUT", "2.0"))

    SESSION_DEFAULT_TTL_MINUTES = int(os.environ.get("SESSION_DEFAULT_TTL_MINUTES", "60"))

    # Payments
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "INR")
    PAYMENT_PROVIDER_TIMEOUT = float(os.environ.get("PAYMENT_PROVIDER_TIMEOUT", "5.0"))
    RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET")
    RAZORPAY_API_BASE = os.environ.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))


class TestConfig(Config):
    TESTING = True
    PANTRY_ENV = "test"
    EXPOSE_ERROR_DETAILS = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RAZORPAY_KEY_ID = "rzp_test_key"
    RAZORPAY_KEY_SECRET = "rzp_test_secret"
