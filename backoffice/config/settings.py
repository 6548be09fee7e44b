"""
Retail Back-Office Analytics
Centralized Configuration Management

Pydantic settings with environment variable support, grouped into one
section per subsystem and aggregated by :class:`Settings`.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational ledger store configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="pos_backoffice", alias="database", description="Database name")
    user: str = Field(default="backoffice", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_size: int = Field(default=20, description="Connection pool size")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full async SQLAlchemy URL (overrides host/port)",
    )

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from host/port"""
        if self.url:
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}"
            f"@{self.host}:{self.port}/{self.db}"
        )


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_", populate_by_name=True)

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=100, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """Request throttling and CORS"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Requests per window")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")
    dashboard_rate_limit: int = Field(
        default=20,
        alias="DASHBOARD_RATE_LIMIT",
        description="Dashboard requests per window per client",
    )

    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class AnalyticsSettings(BaseSettings):
    """Reporting engine configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    default_timezone: str = Field(default="Europe/Nicosia", description="Fallback IANA zone for stores")
    store_timezones: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-store IANA zone overrides, keyed by store id",
    )
    default_store_id: str = Field(default="default-store", description="Store used when no header is sent")

    # Cache tiers
    dashboard_cache_ttl: int = Field(default=300, description="Dashboard payload TTL in seconds")
    request_dedup_ttl: float = Field(default=5.0, description="In-process duplicate request window in seconds")

    # Period rules
    default_period_days: int = Field(default=30, description="Trailing days used when no period is given")
    daily_bucket_max_days: int = Field(default=31, description="Longest window still bucketed by day")
    trend_months: int = Field(default=12, description="Months in the sales-by-month trend")

    # List sizes
    recent_transactions_limit: int = Field(default=10, description="Recent transactions on the dashboard")
    top_products_limit: int = Field(default=5, description="Top products on the dashboard")
    ranking_limit: int = Field(default=10, description="Default size of ranked product lists")
    worst_performers_limit: int = Field(default=20, description="Default size of the worst performers list")
    transactions_page_limit: int = Field(default=50, description="Default filtered transactions page size")

    # Price monitoring
    price_change_threshold: float = Field(default=1.0, description="Minimum cost change in percent to flag")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="pos-backoffice-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_testing(self) -> bool:
        return self.app_env == "testing"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


settings = get_settings()
