"""
Application configuration management using Pydantic Settings.
Loads environment variables and provides centralized configuration.
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "FileVault Lifecycle Engine"
    APP_VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = Field("sqlite:///./filevault.db")

    # Storage backend ("local" or "minio")
    STORAGE_PROVIDER: str = Field("local")
    STORAGE_HOT_PATH: str = Field("./storage/hot")
    STORAGE_COLD_PATH: str = Field("./storage/cold")

    # MinIO / S3
    MINIO_HOST: str = Field("localhost")
    MINIO_PORT: int = Field(9000)
    MINIO_ACCESS_KEY: Optional[str] = None
    MINIO_SECRET_KEY: Optional[str] = None
    MINIO_SECURE: bool = Field(False)
    MINIO_HOT_BUCKET: str = Field("files-hot")
    MINIO_COLD_BUCKET: str = Field("files-cold")

    # File Expiry (free tier)
    FILE_EXPIRY_DAYS_FREE: float = 5
    FILE_EXPIRY_EXTENSION_DAYS: float = 5
    FILE_EXPIRY_DOWNLOAD_THRESHOLD: int = 5  # unique non-owner IPs
    FILE_EXPIRY_DAYS_AFTER_THRESHOLD: float = 1
    FILE_INACTIVITY_DAYS: float = 90  # applies to every plan

    # Tier Migration
    TIER_MIGRATION_HOT_TO_COLD_DAYS: float = 7
    TIER_MIGRATION_COLD_TO_HOT_DOWNLOADS: int = 5
    TIER_MIGRATION_RECENT_DAYS: float = 7
    MIGRATION_CLAIM_TIMEOUT_MINUTES: int = 60
    WORKER_BATCH_SIZE: int = 100

    # Verification tokens
    TOKEN_CODE_LENGTH: int = 6
    TOKEN_MAX_ATTEMPTS: int = 5
    SIGNUP_TOKEN_TTL_MINUTES: int = 15
    RESET_TOKEN_TTL_MINUTES: int = 10

    # Logging
    LOG_LEVEL: str = Field("INFO")
    LOG_FORMAT: str = Field("json")  # "json" or "text"

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v

    @field_validator("STORAGE_PROVIDER")
    @classmethod
    def validate_storage_provider(cls, v):
        """Only the bundled providers are accepted."""
        v = v.lower()
        if v not in ("local", "minio"):
            raise ValueError("STORAGE_PROVIDER must be 'local' or 'minio'")
        return v

    @field_validator("TOKEN_CODE_LENGTH")
    @classmethod
    def validate_code_length(cls, v):
        if not 4 <= v <= 12:
            raise ValueError("TOKEN_CODE_LENGTH must be between 4 and 12")
        return v


# Global settings instance
settings = Settings()
