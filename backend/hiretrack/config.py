from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/hiretrack.db"
    secret_key: str = "dev-secret-key-change-in-production"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Redis configuration
    redis_url: str = "redis://localhost:6379"

    # Celery configuration
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # IANA zone used for the "today" window and daily buckets
    local_timezone: str = "UTC"

    # submit/transition/rate must commit or fail within this many seconds
    transition_timeout_seconds: float = 5.0

    # Dashboard snapshot refresh cadence and cache lifetime
    metrics_refresh_seconds: int = 30
    snapshot_cache_ttl: int = 30

    # Live feed
    feed_capacity: int = 50
    subscriber_queue_size: int = 100

    # Counter reconciliation (Celery beat)
    reconcile_interval_minutes: int = 15

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
