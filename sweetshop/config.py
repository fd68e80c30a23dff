"""Runtime configuration for the service, read from the environment."""
import logging
import os
import secrets
from typing import NamedTuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class Settings(NamedTuple):
    database_url: str = "sqlite:///./sweetshop.db"
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_expires_seconds: int = 60 * 60 * 24  # 1 day
    db_timeout_seconds: float = 10.0
    log_level: str = "INFO"


def load_settings() -> Settings:
    # Values from a local .env file never override the real environment
    load_dotenv()

    secret = os.getenv("JWT_SECRET")
    if not secret:
        secret = secrets.token_hex(32)
        logger.warning("JWT_SECRET not set; using a random per-process secret (tokens will not survive a restart)")

    defaults = Settings()
    return Settings(
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        jwt_secret=secret,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", defaults.jwt_algorithm),
        jwt_expires_seconds=int(os.getenv("JWT_EXPIRES_SECONDS", str(defaults.jwt_expires_seconds))),
        db_timeout_seconds=float(os.getenv("DB_TIMEOUT_SECONDS", str(defaults.db_timeout_seconds))),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )
