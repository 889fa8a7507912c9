"""
Engine settings with validation using pydantic-settings.
Values come from the environment (or a local .env file) and are validated once.
"""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Reservation engine settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = Field(default="production", description="Environment: development or production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Reservation policy
    RESERVATION_TTL_MINUTES: int = Field(default=15, gt=0, description="Default hold duration in minutes")
    SWEEP_INTERVAL_SECONDS: float = Field(default=60.0, gt=0, description="Expiry sweep interval in seconds")
    MAX_RESERVATION_LIFETIME_MINUTES: Optional[int] = Field(
        default=None,
        gt=0,
        description="Upper bound on expires_at - created_at after extensions (unbounded when unset)",
    )

    # Storage
    STORE_BACKEND: str = Field(default="memory", description="Reservation store: memory or sql")
    DATABASE_URL: Optional[str] = Field(default=None, description="SQLAlchemy async URL for the sql store")

    # Database pool configuration
    DB_POOL_SIZE: int = Field(default=10, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=20, description="Database max overflow connections")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database connection recycle time (seconds)")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("development", "production"):
            raise ValueError("ENVIRONMENT must be 'development' or 'production'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("STORE_BACKEND")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "sql"):
            raise ValueError("STORE_BACKEND must be 'memory' or 'sql'")
        return v

    def validate_runtime_settings(self) -> list[str]:
        """
        Cross-field checks that a single validator cannot express.
        Returns list of problems (empty when the configuration is usable).
        """
        errors = []

        if self.STORE_BACKEND == "sql" and not self.DATABASE_URL:
            errors.append("DATABASE_URL is required when STORE_BACKEND is 'sql'")
        if self.is_production and self.STORE_BACKEND == "sql" and self.DATABASE_URL \
                and self.DATABASE_URL.startswith("sqlite"):
            errors.append("SQLite cannot serve as the reservation store in production")
        if self.MAX_RESERVATION_LIFETIME_MINUTES is not None \
                and self.MAX_RESERVATION_LIFETIME_MINUTES < self.RESERVATION_TTL_MINUTES:
            errors.append("MAX_RESERVATION_LIFETIME_MINUTES must not be below RESERVATION_TTL_MINUTES")

        return errors

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_sqlite(self) -> bool:
        return bool(self.DATABASE_URL) and self.DATABASE_URL.startswith("sqlite")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get engine settings (singleton)."""
    global _settings
    if _settings is None:
        settings = Settings()
        errors = settings.validate_runtime_settings()
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)
        _settings = settings
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
