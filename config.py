"""
Configuration for the OTP registration service.
Production (Railway/Render): uses DATABASE_URL only; fails if missing.
Local: DATABASE_URL or DB_* fallback.
"""
import os
from datetime import timedelta
from urllib.parse import quote_plus


def _is_production():
    """True when running on Railway, Render, or explicit production."""
    return (
        os.environ.get("RENDER") == "true"
        or os.environ.get("RAILWAY_ENVIRONMENT") is not None
        or os.environ.get("FLASK_ENV") == "production"
    )


def _normalize_database_url(url):
    """Convert postgres:// to postgresql+psycopg2:// for SQLAlchemy/psycopg2."""
    if not url:
        return url
    url = url.strip()
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[11:]
    if url.startswith("postgresql://") and "psycopg2" not in url:
        return "postgresql+psycopg2://" + url[13:]
    return url


def _get_database_uri():
    """Database URI: production = DATABASE_URL only; local = DATABASE_URL or DB_*."""
    if _is_production():
        url = os.environ.get("DATABASE_URL")
        if not url or not url.strip():
            raise RuntimeError(
                "DATABASE_URL is required in production (Railway/Render). "
                "Set it in your service environment variables."
            )
        return _normalize_database_url(url.strip())

    url = os.environ.get("DATABASE_URL")
    if url and url.strip():
        return _normalize_database_url(url.strip())

    host = os.environ.get("DB_HOST", "localhost")
    port = os.environ.get("DB_PORT", "5432")
    name = os.environ.get("DB_NAME", "otpauth")
    user = os.environ.get("DB_USER", "otpauth")
    password = os.environ.get("DB_PASSWORD", "")
    if password:
        password = quote_plus(password)
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"


def _int_env(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key-change-in-production"
    # Key for OTP hashes; rotating it invalidates every pending code.
    OTP_SECRET = os.environ.get("OTP_SECRET") or SECRET_KEY

    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "false").lower() in ("true", "on", "1")
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    SQLALCHEMY_DATABASE_URI = _get_database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT") or 587)
    MAIL_USE_TLS = os.environ.get("MAIL_USE_TLS", "true").lower() in ("true", "on", "1")
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER") or os.environ.get("MAIL_USERNAME") or "noreply@otpauth.local"

    # OTP policy. TTLs are per flow and are the only source for expiresIn.
    OTP_TTL_SECONDS = _int_env("OTP_TTL_SECONDS", 5 * 60)
    RESET_OTP_TTL_SECONDS = _int_env("RESET_OTP_TTL_SECONDS", 10 * 60)
    OTP_MAX_ATTEMPTS = _int_env("OTP_MAX_ATTEMPTS", 5)
    OTP_MAX_SENDS_PER_WINDOW = _int_env("OTP_MAX_SENDS_PER_WINDOW", 5)
    OTP_SEND_WINDOW_SECONDS = _int_env("OTP_SEND_WINDOW_SECONDS", 15 * 60)
    OTP_RESEND_LIMIT = _int_env("OTP_RESEND_LIMIT", 3)
    OTP_RESEND_WINDOW_SECONDS = _int_env("OTP_RESEND_WINDOW_SECONDS", 5 * 60)
    OTP_RETENTION_HOURS = _int_env("OTP_RETENTION_HOURS", 24)

    REGISTRATION_TOKEN_LIFETIME_SECONDS = _int_env("REGISTRATION_TOKEN_LIFETIME_SECONDS", 15 * 60)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FILE = os.environ.get("LOG_FILE")


class TestingConfig(Config):
    """In-memory SQLite and suppressed mail for the test suite."""
    TESTING = True
    SECRET_KEY = "test-secret-key"
    OTP_SECRET = "test-otp-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    MAIL_SERVER = "localhost"
    MAIL_USERNAME = "tests@otpauth.local"
    MAIL_DEFAULT_SENDER = "tests@otpauth.local"
    MAIL_SUPPRESS_SEND = True
    LOG_LEVEL = "DEBUG"
    LOG_FILE = None
