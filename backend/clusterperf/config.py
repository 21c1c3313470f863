"""
Configuration management for the cluster performance tracker using Pydantic Settings.

Loads configuration from environment variables with type validation and sane defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Database
    database_url: str = Field(default="sqlite:///./cluster_performance.db", description="SQLAlchemy connection URL")

    # Quote provider
    price_provider: str = Field(default="alpha_vantage", description="Quote provider: alpha_vantage or yahoo")
    alpha_vantage_api_key: str = Field(default="", description="Alpha Vantage API key")
    alpha_vantage_base_url: str = Field(default="https://www.alphavantage.co/query", description="Alpha Vantage endpoint")
    price_request_timeout: int = Field(default=30, description="Quote provider request timeout (seconds)")

    # Price cache
    price_cache_ttl_seconds: int = Field(default=300, description="Current-price cache TTL in seconds")
    price_cache_max_entries: int = Field(default=1024, description="Maximum cached quotes")

    # Rate Limiting
    provider_rate_limit_requests: int = Field(default=1, description="Provider requests per period")
    provider_rate_limit_period: float = Field(default=0.5, description="Provider rate limit period (seconds)")

    # Performance tracking
    performance_lookback_days: int = Field(default=90, description="Actions older than this need no new snapshots")
    performance_schedule_minutes: int = Field(default=60, description="Interval between scheduled cycles")

    # Logging
    log_level: str = Field(default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="text", description="Log format: json or text")
    log_file: str = Field(default="", description="Log file path (empty disables file logging)")

    @field_validator("price_provider")
    @classmethod
    def validate_price_provider(cls, v: str) -> str:
        """Normalize and validate the provider name."""
        v = v.strip().lower()
        if v not in {"alpha_vantage", "yahoo"}:
            raise ValueError(f"Unknown price_provider '{v}'. Must be 'alpha_vantage' or 'yahoo'")
        return v

    @field_validator(
        "price_cache_ttl_seconds",
        "price_cache_max_entries",
        "provider_rate_limit_requests",
        "performance_lookback_days",
        "performance_schedule_minutes",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"


# Global settings instance
settings = Settings()
