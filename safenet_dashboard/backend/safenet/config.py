# ==============================================================================
# == backend/safenet/config.py - Settings & logging setup                    ==
# ==============================================================================

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Settings(BaseSettings):
    APP_NAME: str = "SafeNet Home Backend"
    API_PREFIX: str = "/api"
    WS_PATH: str = "/ws"

    STATS_INTERVAL_SECONDS: float = 5.0
    TELEMETRY_ENABLED: bool = True
    SEED_DEFAULT_DATA: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    CORS_ORIGINS: list[str] = ["*"]
    RATE_LIMIT_MAX_REQUESTS: int = 1000
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_CLEANUP_SECONDS: int = 300
    SLOW_REQUEST_MS: float = 1000.0

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()


class RequestIDFilter(logging.Filter):
    """Adds request_id to every record so handlers can format it."""
    def filter(self, record):
        record.request_id = getattr(record, 'request_id', 'N/A')
        return True


def configure_logging(settings: Settings) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )

    for handler in logging.root.handlers:
        if not any(isinstance(f, RequestIDFilter) for f in handler.filters):
            handler.addFilter(RequestIDFilter())
