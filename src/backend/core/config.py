"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "SentinelLink"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - loaded from environment

    # Database - PostgreSQL
    DATABASE_URL: str | None = None  # Full URL overrides the POSTGRES_* parts
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "sentinellink"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "sentinellink"
    DB_POOL_SIZE: int = 10
    DB_ECHO: bool = False

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @property
    def POSTGRES_URL(self) -> str:
        """Construct the async PostgreSQL connection URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Authentication (tokens are issued by the identity service, verified here)
    JWT_ALGORITHM: str = "HS256"

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Media storage (Cloudinary)
    CLOUDINARY_CLOUD_NAME: str | None = None
    CLOUDINARY_API_KEY: str | None = None
    CLOUDINARY_API_SECRET: str | None = None
    CLOUDINARY_FOLDER: str = "sentinellink"
    MEDIA_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    MEDIA_UPLOAD_TIMEOUT_SECONDS: float = 30.0

    # Incident lifecycle
    VERIFICATION_THRESHOLD: int = 5  # Upvotes needed to auto-verify a REPORTED incident
    DUPLICATE_DISTANCE_METERS: float = 200.0
    DUPLICATE_TIME_MINUTES: int = 10

    # Realtime
    REALTIME_SEND_TIMEOUT_SECONDS: float = 5.0  # A subscriber slower than this is dropped

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @field_validator("VERIFICATION_THRESHOLD", "DUPLICATE_TIME_MINUTES", "DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE")
    @classmethod
    def validate_positive(cls, v: int, info: Any) -> int:
        """Lifecycle and paging knobs must be at least 1."""
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
