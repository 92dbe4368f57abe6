"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    app_secret_key: str
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins (auto-includes localhost in dev)

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Firm-wide timezone for calendar payloads and the daily refresh "today"
    timezone: str = "Asia/Kolkata"

    # Sentry
    sentry_dsn: str = ""

    # Alerting
    alert_webhook_url: str = ""  # Discord/Slack webhook URL for critical alerts

    # Google Calendar OAuth
    google_client_id: str = ""
    google_client_secret: str = ""

    # Court-data provider (Legalkart)
    legalkart_user_id: str = ""
    legalkart_hash_key: str = ""

    # Calendar sync worker
    calendar_sync_enabled: bool = True
    calendar_sync_batch_size: int = 50
    calendar_sync_delay_ms: int = 150
    calendar_sync_poll_seconds: int = 60

    # Case fetch queue worker
    fetch_queue_enabled: bool = True
    fetch_queue_batch_size: int = 10
    fetch_queue_delay_ms: int = 1500
    fetch_queue_poll_seconds: int = 120
    fetch_queue_default_max_retries: int = 5

    # Daily hearing refresh
    refresh_max_successful: int = 35
    refresh_batch_size: int = 2
    refresh_batch_delay_ms: int = 2000
    refresh_time_budget_seconds: int = 50
    refresh_case_timeout_seconds: int = 25
    refresh_max_candidates: int = 100

    # Booking
    booking_revalidate_slots: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
