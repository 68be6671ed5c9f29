# config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///auctions.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JSON_SORT_KEYS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Identity provider (JWT + session cookie are issued elsewhere, only verified here)
    SECRET_KEY = os.getenv("SECRET_KEY", "auctions-session-secret")
    JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
    JWT_ALGO = "HS256"
    AUTH_URL = os.getenv("AUTH_URL", "")

    # Bidding
    DEFAULT_BID_INCREMENT = os.getenv("DEFAULT_BID_INCREMENT", "5")
    BID_CAS_RETRIES = int(os.getenv("BID_CAS_RETRIES", "3"))
    FEATURED_LIMIT = int(os.getenv("FEATURED_LIMIT", "8"))

    # Lifecycle sweeper
    SWEEPER_ENABLED = _env_bool("SWEEPER_ENABLED", True)
    SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", "900"))
    SWEEP_INITIAL_DELAY_SECONDS = float(os.getenv("SWEEP_INITIAL_DELAY_SECONDS", "10"))

    # Notifications
    NOTIFY_URL = os.getenv("NOTIFY_URL", "")
    NOTIFY_ASYNC = _env_bool("NOTIFY_ASYNC", True)
    NOTIFY_WORKERS = int(os.getenv("NOTIFY_WORKERS", "4"))
    NOTIFY_RETRIES = int(os.getenv("NOTIFY_RETRIES", "2"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET = "test-secret"
    SECRET_KEY = "test-session-secret"
    AUTH_URL = ""
    NOTIFY_URL = ""
    SWEEPER_ENABLED = False
    NOTIFY_ASYNC = False
    NOTIFY_RETRIES = 0
