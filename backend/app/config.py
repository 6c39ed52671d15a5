"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.models.config import RateLimitConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream market data API (CoinMarketCap)
    cmc_api_key: str = ""
    cmc_base_url: str = "https://pro-api.coinmarketcap.com"
    upstream_timeout: float = 10.0  # seconds

    # Call budget / circuit breaker
    monthly_budget: int = 110_000
    # None = derive from monthly budget (about 2/min early in a month at 110k).
    # The throttle band needs >= 20/min and the emergency band >= 100/min at
    # the default thresholds; below that only the hard budget rejects.
    per_minute_budget: int | None = None
    throttle_threshold: float = 0.95
    emergency_threshold: float = 0.99
    recovery_interval: float = 15.0  # seconds
    failure_threshold: int = 5

    # Caching / history
    market_cache_ttl: float = 30.0  # seconds
    history_max_points: int = 200

    # Scheduler
    base_interval: float = 60.0  # seconds per base tick
    max_concurrency: int = 8
    engine_config_path: str = ""  # empty = backend/signals.yaml

    # Redis signal mirror
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = False

    # Logging
    log_level: str = "INFO"

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            monthly_budget=self.monthly_budget,
            per_minute_override=self.per_minute_budget,
            throttle_threshold=self.throttle_threshold,
            emergency_threshold=self.emergency_threshold,
            recovery_interval=self.recovery_interval,
            failure_threshold=self.failure_threshold,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
