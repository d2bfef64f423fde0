"""
Portfolio API Configuration

Configuration management with environment variable support.
Defaults mirror the production deployment: a local MariaDB/PostgreSQL pool,
an optional Redis reachable over a Unix socket, and a bounded in-process cache.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional, List
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Enable debug mode")

    # Logging
    LOG_LEVEL: str = Field(default="WARNING", description="Logging level")
    LOG_DIR: str = Field(default="logs", description="Directory for rotated log files")
    LOG_FILE_RETENTION_DAYS: int = Field(
        default=14, ge=1, le=365, description="Number of daily log files to keep"
    )
    LOG_STATS_INTERVAL_SECONDS: int = Field(
        default=3600, ge=1, description="Interval for logging and resetting counters"
    )

    # Database configuration
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./portfolio.db",
        description="Async SQLAlchemy database URL",
    )
    DATABASE_POOL_SIZE: int = Field(
        default=30, ge=1, le=200, description="Database connection pool size"
    )
    DATABASE_MAX_OVERFLOW: int = Field(
        default=0, ge=0, le=100, description="Maximum overflow connections"
    )
    DATABASE_POOL_TIMEOUT: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Seconds a request may wait for a pooled connection",
    )
    DATABASE_POOL_RECYCLE: int = Field(
        default=600, ge=60, le=86400, description="Connection recycle time in seconds"
    )
    SLOW_QUERY_THRESHOLD_MS: int = Field(
        default=1000,
        ge=1,
        le=60000,
        description="Slow query threshold in milliseconds",
    )

    # Redis configuration (optional second cache tier)
    REDIS_ENABLED: bool = Field(default=True, description="Enable the Redis tier")
    REDIS_SOCKET: str = Field(
        default="/run/synocached.sock", description="Redis Unix domain socket path"
    )
    REDIS_CONNECT_TIMEOUT: float = Field(
        default=2.0, gt=0, le=60, description="Redis socket connect timeout"
    )
    REDIS_MAX_RECONNECT_ATTEMPTS: int = Field(
        default=10, ge=1, le=100, description="Reconnect attempts before giving up"
    )
    REDIS_RECONNECT_MAX_DELAY: float = Field(
        default=3.0, gt=0, le=60, description="Cap on the delay between attempts"
    )
    REDIS_RECONNECT_WINDOW: float = Field(
        default=3600.0, gt=0, description="Total reconnect window in seconds"
    )
    REDIS_DEFAULT_TTL: int = Field(
        default=3600, ge=1, description="Default Redis entry TTL in seconds"
    )

    # In-process cache
    CACHE_DEFAULT_TTL: int = Field(
        default=600, ge=1, description="Default in-process entry TTL in seconds"
    )
    CACHE_MAX_KEYS: int = Field(
        default=2000, ge=1, description="Maximum number of in-process entries"
    )
    CACHE_CHECK_PERIOD: int = Field(
        default=300, ge=1, description="Expired entry sweep interval in seconds"
    )
    CACHE_SINGLE_FLIGHT: bool = Field(
        default=True,
        description="Share one computation between concurrent misses on a key",
    )

    # API configuration
    API_HOST: str = Field(default="0.0.0.0", description="API server host")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="API server port")
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="CORS allowed origins (comma-separated)",
    )
    ADMIN_TOKEN: Optional[str] = Field(
        default=None, description="Static token for admin write routes"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL uses an async driver."""
        async_prefixes = (
            "sqlite+aiosqlite://",
            "postgresql+asyncpg://",
            "mysql+aiomysql://",
            "mysql+asyncmy://",
        )
        if not v.startswith(async_prefixes):
            raise ValueError(
                f"DATABASE_URL must use an async driver, one of: {async_prefixes}"
            )
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as list."""
        return [
            origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()
