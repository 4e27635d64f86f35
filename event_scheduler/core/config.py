import os

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./events.db")

# Redis configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Registration locking is off by default: capacity checks are best-effort
REGISTRATION_LOCK_ENABLED = os.getenv("REGISTRATION_LOCK_ENABLED", "false").lower() in ("1", "true", "yes")
REGISTRATION_LOCK_TIMEOUT = int(os.getenv("REGISTRATION_LOCK_TIMEOUT", "10"))
REGISTRATION_LOCK_BLOCKING_TIMEOUT = int(os.getenv("REGISTRATION_LOCK_BLOCKING_TIMEOUT", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def get_database_url():
    return DATABASE_URL


def get_redis_url():
    return REDIS_URL


def registration_lock_enabled() -> bool:
    return REGISTRATION_LOCK_ENABLED
