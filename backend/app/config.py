"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/forex_signals"

    # Redis (latest price cache written by the market stream)
    redis_url: str = "redis://localhost:6379/0"

    # Outcome reconciler
    reconcile_scan_limit: int = 100
    reconcile_batch_size: int = 10
    reconcile_max_repairs_per_run: int | None = None
    reconcile_interval_seconds: float = 0  # 0 disables the periodic run
    initial_reconcile_delay_seconds: float = 2.0

    # Expiration audit listener
    audit_listener_enabled: bool = True
    audit_channel: str = "signal_expired"
    audit_delay_seconds: float = 2.0
    audit_reconnect_delay_seconds: float = 1.0  # 0 disables reconnecting

    # Verification report
    verify_expired_window: int = 50
    verify_outcome_sample: int = 20
    missing_outcome_threshold: int = 5

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
