"""
Core Configuration Management
Exchange Trading Platform

Environment-based settings for the database, notification transport,
pricing feeds, the rate polling engine and the fallback trading rules.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    user: str = Field(default="user", description="Database user")
    password: str = Field(default="password", description="Database password")
    name: str = Field(default="exchange", description="Database name")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL override")
    echo: bool = Field(default=False, description="Log SQL statements")

    # Connection pool settings
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=20, description="Max overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Recycle connections after seconds")

    @property
    def async_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[str] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    socket_timeout: float = Field(default=5.0, description="Socket timeout")

    # Pub/sub channel read by the dashboards
    channel: str = Field(default="info", description="Notification channel")

    @property
    def url(self) -> str:
        """Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class FeedSettings(BaseSettings):
    """Upstream pricing feed settings."""

    model_config = SettingsConfigDict(env_prefix="FEED_")

    cryptonator_url: str = Field(default="https://api.cryptonator.com/api", description="Cryptonator base URL")
    iex_url: str = Field(default="https://cloud.iexapis.com/stable", description="IEX Cloud base URL")
    fcs_url: str = Field(default="https://fcsapi.com/api-v2", description="FCS API base URL")

    # Used only when the settings row carries no key
    iex_api_key: str = Field(default="", description="Fallback IEX token")
    fcs_api_key: str = Field(default="", description="Fallback FCS access key")

    timeout_seconds: float = Field(default=10.0, description="Per-request timeout")
    max_attempts: int = Field(default=3, description="Attempts per price request")
    retry_backoff: float = Field(default=2.0, description="Seconds between attempts")


class EngineSettings(BaseSettings):
    """Rate polling engine settings."""

    model_config = SettingsConfigDict(env_prefix="ENGINE_")

    poll_interval: float = Field(default=20.0, description="Seconds between polling passes")
    max_workers: int = Field(default=8, description="Concurrent asset updates per pass")
    sample_throttle: int = Field(default=10800, description="Min seconds between rate samples")
    day_window: int = Field(default=86400, description="Lookback for the 24h change")
    sample_retention: int = Field(default=7 * 86400, description="Seconds rate samples are kept")

    # Seconds an asset rate stays fresh, per market class
    update_intervals: Dict[str, int] = Field(
        default={
            "crypto": 60,
            "stock": 60,
            "forex": 60,
            "commodity": 300,
            "index": 60,
        },
        description="Per-market update interval",
    )

    def update_interval(self, market: str) -> int:
        return self.update_intervals.get(market, 60)


class TradingSettings(BaseSettings):
    """Fallback trading rules used when no settings row exists."""

    model_config = SettingsConfigDict(env_prefix="TRADING_")

    # Leverage caps per market class
    leverage_crypto: int = Field(default=2, description="Crypto leverage cap")
    leverage_stock: int = Field(default=5, description="Stock leverage cap")
    leverage_forex: int = Field(default=100, description="Forex leverage")
    leverage_commodity: int = Field(default=10, description="Commodity leverage cap")
    leverage_index: int = Field(default=10, description="Index leverage cap")

    # Percentages of gain
    stop_loss_protection: Decimal = Field(default=Decimal("80"), description="System stop loss %")
    take_profit_protection: Decimal = Field(default=Decimal("500"), description="System take profit %")
    stop_loss_allowed: Decimal = Field(default=Decimal("0"), description="Max member stop loss % (0 = none)")
    take_profit_allowed: Decimal = Field(default=Decimal("0"), description="Max member take profit % (0 = none)")

    # Forex
    forex_lot_size: Decimal = Field(default=Decimal("100000"), description="Units per forex lot")
    forex_usd_pip_value: Decimal = Field(default=Decimal("10"), description="Pip value per lot for USD base")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        description="Log format"
    )

    # File logging
    file_enabled: bool = Field(default=True, description="Enable file logging")
    file_path: str = Field(default="logs/exchange.json", description="Structured log file path")
    error_path: str = Field(default="logs/error.log", description="Error log file path")
    file_rotation: str = Field(default="100 MB", description="Log rotation size")
    file_retention: str = Field(default="30 days", description="Log retention period")


class Settings(BaseSettings):
    """
    Main application settings.

    Aggregates all sub-settings. Sub-settings read their own prefixed
    environment variables on access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    PROJECT_NAME: str = Field(default="Exchange", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    @property
    def db(self) -> DatabaseSettings:
        """Get database settings."""
        return DatabaseSettings()

    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings()

    @property
    def feed(self) -> FeedSettings:
        """Get pricing feed settings."""
        return FeedSettings()

    @property
    def engine(self) -> EngineSettings:
        """Get polling engine settings."""
        return EngineSettings()

    @property
    def trading(self) -> TradingSettings:
        """Get fallback trading rules."""
        return TradingSettings()

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call get_settings.cache_clear() or reload_settings() to reload.
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
