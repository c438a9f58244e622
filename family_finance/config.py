import os
from datetime import timedelta


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///family_finance.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public base URL used in invitation / welcome links
    APP_URL = os.getenv("APP_URL", "http://localhost:5000")
    APP_NAME = os.getenv("APP_NAME", "Family Finance Tracker")

    # Household defaults
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "IDR")
    INVITE_TTL_DAYS = int(os.getenv("INVITE_TTL_DAYS", "7"))

    # Session cookie ("remember me" lasts as long as the original auth cookie)
    REMEMBER_COOKIE_DURATION = timedelta(days=7)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Uploads
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(os.getcwd(), "uploads"))
    MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 64 * 1024

    # Background jobs
    CRON_SECRET = os.getenv("CRON_SECRET")
    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED", "true")
    SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "Asia/Jakarta")

    # Flask-Mail
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _flag("MAIL_USE_TLS", "true")
    MAIL_USE_SSL = _flag("MAIL_USE_SSL", "false")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv(
        "MAIL_DEFAULT_SENDER", "Family Finance Tracker <noreply@familyfinance.app>"
    )


class Development(Config):
    DEBUG = True


class Production(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
    }


class Testing(Config):
    TESTING = True
    SECRET_KEY = "test_secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SCHEDULER_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "noreply@test.local"
    CRON_SECRET = "test-cron-secret"
    APP_URL = "http://testserver"
