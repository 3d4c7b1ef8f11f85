from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./tracker.db"
    database_echo: bool = False

    redis_dsn: str | None = None  # L1 only when unset
    l1_maxsize: int = 2048
    l1_ttl_seconds: int = 60  # default L1 TTL
    l2_ttl_seconds: int = 300  # default Redis TTL
    cache_namespace: str = "tracker:"
    redis_pool_size: int = 5

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Task operations ignore project membership unless this is switched on.
    enforce_task_project_access: bool = False

    scheduler_enabled: bool = True
    reminder_window_hours: int = 24
    cleanup_retention_days: int = 30
    daily_report_hour: int = 8
    heartbeat_interval_seconds: int = 300

    notification_queue_size: int = 1000
    subscriber_queue_size: int = 100

    log_level: str = "INFO"
    log_file: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
