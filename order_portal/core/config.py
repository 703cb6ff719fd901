"""
Application configuration management with environment variables.

This module provides centralized configuration management using Pydantic
BaseSettings for type-safe environment variable handling with validation
and default values.
"""

from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables with the
    APP_ prefix (e.g., APP_MONGODB_URL, APP_STORE_BACKEND).
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    app_name: str = Field(
        default="Selective Trading Orders API",
        description="Application name",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application logging level",
    )

    # API Configuration
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version 1 route prefix",
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Store Configuration
    store_backend: Literal["auto", "mongo", "json"] = Field(
        default="auto",
        description="Record store backend: MongoDB with JSON fallback, MongoDB only, or JSON only",
    )

    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL",
    )

    mongodb_database: str = Field(
        default="selective_trading",
        description="MongoDB database name",
    )

    mongodb_server_selection_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=60000,
        description="Server selection timeout before the primary is considered down",
    )

    mongodb_connect_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=60000,
        description="Socket connect timeout for the primary backend",
    )

    mongodb_max_pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum MongoDB connection pool size",
    )

    mongodb_min_pool_size: int = Field(
        default=1,
        ge=0,
        le=100,
        description="Minimum MongoDB connection pool size",
    )

    store_primary_retry_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Seconds to route straight to the fallback after a primary failure",
    )

    json_store_path: Optional[str] = Field(
        default="data/db.json",
        description="Path of the JSON fallback document; empty means memory-only",
    )

    business_timezone: str = Field(
        default="UTC",
        description="IANA time zone used for day boundaries",
    )

    # Order Configuration
    order_edit_window_hours: float = Field(
        default=2.0,
        ge=0,
        description="Hours a customer may edit an order after placing it",
    )

    order_min_total_items: int = Field(
        default=2,
        ge=1,
        description="Minimum total item units per order",
    )

    order_message_max_length: int = Field(
        default=500,
        ge=0,
        description="Maximum length of the free-text order message",
    )

    order_number_scheme: Literal["daily", "sequential"] = Field(
        default="daily",
        description="Order number format: day-scoped with prefix, or bare sequence",
    )

    order_number_prefix: str = Field(
        default="ST",
        min_length=1,
        max_length=8,
        description="Prefix of day-scoped order numbers",
    )

    order_number_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Attempts to allocate a unique order number before giving up",
    )

    # Reporting Configuration
    report_top_n: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Length of the product and customer leaderboards",
    )

    @field_validator("mongodb_url")
    @classmethod
    def validate_mongodb_url(cls, v: str) -> str:
        """
        Validate MongoDB URL format.

        Args:
            v: MongoDB URL value

        Returns:
            Validated MongoDB URL

        Raises:
            ValueError: If URL scheme is not a MongoDB scheme
        """
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                "MongoDB URL must start with 'mongodb://' or 'mongodb+srv://'"
            )
        return v

    @field_validator("business_timezone")
    @classmethod
    def validate_business_timezone(cls, v: str) -> str:
        """
        Validate that the business time zone is a known IANA zone.

        Args:
            v: Time zone name

        Returns:
            Validated time zone name

        Raises:
            ValueError: If the zone cannot be loaded
        """
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @field_validator("json_store_path", mode="before")
    @classmethod
    def normalize_json_store_path(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty path as memory-only storage."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> list[str]:
        """
        Parse CORS origins from string or list.

        Args:
            v: CORS origins value (string or list)

        Returns:
            List of CORS origin URLs
        """
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def tz(self) -> ZoneInfo:
        """Business time zone as a tzinfo object."""
        return ZoneInfo(self.business_timezone)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    This function uses lru_cache to ensure settings are loaded only once
    and reused across the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
