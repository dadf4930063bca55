"""Application configuration settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EXAM_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Exam Engine"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./exam_engine.db"
    seed_default_patterns: bool = True

    # Attempt timing
    submission_grace_seconds: int = 60  # late submits accepted as SUBMITTED
    timer_tick_seconds: float = 1.0
    autosave_interval_seconds: float = 30.0
    timer_warning_seconds: int = 600  # 10 minutes left
    timer_critical_seconds: int = 300  # 5 minutes left

    # HTTP client used by the candidate session
    api_base_url: str = "http://localhost:8000"
    api_timeout: float = 10.0

    cors_origins: list[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
