"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # STOCK TRANSACTIONS
    # ===================
    stock_transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Optimistic retries before a stock mutation gives up"
    )
    supabase_page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Rows per request when reading whole tables (PostgREST caps at 1000)"
    )

    # ===================
    # REPORTS
    # ===================
    abc_window_days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="Trailing window for ABC consumption value"
    )
    abc_class_a_threshold: float = Field(
        default=80.0,
        gt=0,
        le=100,
        description="Cumulative share (%) up to which products are class A"
    )
    abc_class_b_threshold: float = Field(
        default=95.0,
        gt=0,
        le=100,
        description="Cumulative share (%) up to which products are class B"
    )
    dead_stock_window_days: int = Field(
        default=180,
        ge=1,
        le=3650,
        description="Days without outbound movement before stock is dead"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed by CORS (JSON list in env)"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
