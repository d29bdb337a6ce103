"""Configuration management for the Awards API service."""
from typing import Optional
from pydantic_settings import BaseSettings

from services.shared import VotingWindowConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service configuration
    SERVICE_NAME: str = "awards-api"
    API_VERSION: str = "v1"
    DEBUG: bool = False

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Store backend: "postgres" or "memory"
    STORE_BACKEND: str = "postgres"

    # PostgreSQL configuration
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "awards_db"
    POSTGRES_USER: str = "awards_user"
    POSTGRES_PASSWORD: str = "awards_pass"
    APPLY_SCHEMA: bool = False

    # Redis configuration (results cache)
    REDIS_ENABLED: bool = True
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    RESULTS_CACHE_TTL: int = 30

    # Rate limiting
    RATE_LIMIT: str = "300/minute"
    VOTE_RATE_LIMIT: str = "120/minute"

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # Connection pools
    POSTGRES_POOL_MIN_SIZE: int = 2
    POSTGRES_POOL_MAX_SIZE: int = 10

    # Voting window, wall clock in a fixed UTC offset
    VOTING_DEADLINE: str = "2026-01-07 23:59:59"
    LIVE_VOTING_START: str = "2025-10-01 00:00:00"
    VOTING_LOCK_ENABLED: bool = True
    VOTING_UTC_OFFSET_HOURS: int = 8

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def postgres_dsn(self) -> str:
        """Generate PostgreSQL connection string."""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        """Generate Redis connection URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    def voting_window(self) -> VotingWindowConfig:
        """Build the immutable voting window. Called once at startup."""
        return VotingWindowConfig.from_wall_clock(
            deadline=self.VOTING_DEADLINE,
            live_voting_start=self.LIVE_VOTING_START,
            lock_enabled=self.VOTING_LOCK_ENABLED,
            utc_offset_hours=self.VOTING_UTC_OFFSET_HOURS
        )


settings = Settings()
