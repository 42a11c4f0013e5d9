from datetime import timedelta
from pydantic import model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Work Session Tracker"
    DEBUG: bool = False
    ENV: str = "production"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://timeclock_user:change_me@db:5432/timeclock_db"
    AUTO_CREATE_TABLES: bool = False

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS string into a list of origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Session lifecycle
    ABANDONED_SESSION_THRESHOLD_HOURS: float = 12.0  # open sessions older than this need recover/discard
    MAX_SESSION_DURATION_HOURS: float = 16.0  # completed sessions may not span longer
    TICK_INTERVAL_SECONDS: float = 1.0

    @model_validator(mode="after")
    def check_abandoned_threshold(self) -> "Settings":
        # An open session older than the maximum duration can never be
        # completed, so it must be surfaced for recover/discard before that.
        if self.ABANDONED_SESSION_THRESHOLD_HOURS > self.MAX_SESSION_DURATION_HOURS:
            raise ValueError(
                "ABANDONED_SESSION_THRESHOLD_HOURS must not exceed MAX_SESSION_DURATION_HOURS"
            )
        return self

    @property
    def abandoned_session_threshold(self) -> timedelta:
        return timedelta(hours=self.ABANDONED_SESSION_THRESHOLD_HOURS)

    @property
    def max_session_duration(self) -> timedelta:
        return timedelta(hours=self.MAX_SESSION_DURATION_HOURS)

    # Weekly statistics start on Monday 00:00 in this timezone
    WEEK_TIMEZONE: str = "UTC"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
