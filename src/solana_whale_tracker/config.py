"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Solana Whale Tracker, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from solana_whale_tracker.alerter.channels.telegram import TELEGRAM_API_BASE
from solana_whale_tracker.ingestor.providers import (
    DEFAULT_HELIUS_URL,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_RPC_URL,
    DEFAULT_SIGNATURE_LIMIT,
    DEFAULT_SOLANAFM_URL,
    DEFAULT_SOLSCAN_URL,
)

BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def _split_csv(v: Any) -> Any:
    """Split a comma-separated environment value into a list."""
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


def _validate_http_url(v: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError("URL must be an HTTP(S) endpoint")
    return v


class TelegramSettings(BaseSettings):
    """Telegram bot settings."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    bot_token: SecretStr = Field(
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    api_url: str = Field(
        default=TELEGRAM_API_BASE,
        alias="TELEGRAM_API_URL",
        description="Telegram Bot API base URL",
    )
    poll_timeout: int = Field(
        default=30,
        alias="TELEGRAM_POLL_TIMEOUT",
        description="Long-poll timeout for bot commands in seconds",
        ge=0,
    )

    @field_validator("api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Bot API URL format."""
        return _validate_http_url(v)


class ProviderSettings(BaseSettings):
    """Indexer provider settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    helius_api_key: SecretStr | None = Field(
        default=None,
        alias="HELIUS_API_KEY",
        description="Helius API key; Helius is skipped when unset",
    )
    helius_url: str = Field(default=DEFAULT_HELIUS_URL, alias="HELIUS_API_URL")
    solscan_url: str = Field(default=DEFAULT_SOLSCAN_URL, alias="SOLSCAN_API_URL")
    solanafm_url: str = Field(default=DEFAULT_SOLANAFM_URL, alias="SOLANAFM_API_URL")
    timeout: float = Field(
        default=5.0,
        alias="PROVIDER_TIMEOUT",
        description="Per-request HTTP timeout in seconds",
        gt=0,
    )
    page_limit: int = Field(
        default=DEFAULT_PAGE_LIMIT,
        alias="PROVIDER_PAGE_LIMIT",
        description="Transactions requested per wallet",
        ge=1,
    )

    @field_validator("helius_url", "solscan_url", "solanafm_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate provider URL format."""
        return _validate_http_url(v)


class RpcSettings(BaseSettings):
    """Solana JSON-RPC settings."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    urls: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [DEFAULT_RPC_URL],
        alias="SOLANA_RPC_URLS",
        description="Comma-separated RPC endpoints, rotated on throttling",
    )
    signature_limit: int = Field(
        default=DEFAULT_SIGNATURE_LIMIT,
        alias="SOLANA_RPC_SIGNATURE_LIMIT",
        ge=1,
    )

    @field_validator("urls", mode="before")
    @classmethod
    def split_urls(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        """Validate RPC URL format."""
        if not v:
            raise ValueError("at least one RPC endpoint is required")
        return [_validate_http_url(url) for url in v]


class TrackerSettings(BaseSettings):
    """Wallet tracking and pipeline tuning settings."""

    model_config = SettingsConfigDict(
        env_prefix="TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    wallets: Annotated[list[str], NoDecode] = Field(
        alias="TRACKER_WALLETS",
        description="Comma-separated wallet addresses to watch",
    )
    mode: Literal["indexer", "rpc", "swaps"] = Field(
        default="indexer",
        alias="TRACKER_MODE",
        description="Fetch strategy: indexer APIs, raw RPC, or DEX swaps over RPC",
    )
    swap_programs: dict[str, str] | None = Field(
        default=None,
        alias="TRACKER_SWAP_PROGRAMS",
        description="JSON object of swap program id to display name",
    )
    min_alert_amount: Decimal = Field(default=Decimal(1000), alias="TRACKER_MIN_ALERT_AMOUNT")
    min_swap_increase: Decimal = Field(default=Decimal(0), alias="TRACKER_MIN_SWAP_INCREASE", ge=0)
    poll_interval: float = Field(default=30.0, alias="TRACKER_POLL_INTERVAL", gt=0)
    cache_expiry: float = Field(default=3600.0, alias="TRACKER_CACHE_EXPIRY", gt=0)
    rate_limit_capacity: int = Field(default=30, alias="TRACKER_RATE_LIMIT_CAPACITY", ge=1)
    rate_limit_window: float = Field(default=60.0, alias="TRACKER_RATE_LIMIT_WINDOW", gt=0)
    max_retries: int = Field(default=3, alias="TRACKER_MAX_RETRIES", ge=0)
    backoff_base: float = Field(default=1.0, alias="TRACKER_BACKOFF_BASE", ge=0)
    backoff_cap: float = Field(default=30.0, alias="TRACKER_BACKOFF_CAP", ge=0)
    batch_size: int = Field(default=5, alias="TRACKER_BATCH_SIZE", ge=1)
    batch_concurrency: int = Field(default=5, alias="TRACKER_BATCH_CONCURRENCY", ge=1)
    batch_pause: float = Field(default=1.0, alias="TRACKER_BATCH_PAUSE", ge=0)

    @field_validator("wallets", mode="before")
    @classmethod
    def split_wallets(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("wallets")
    @classmethod
    def validate_wallets(cls, v: list[str]) -> list[str]:
        """Validate wallet addresses and drop duplicates, keeping order."""
        if not v:
            raise ValueError("at least one wallet address is required")
        for address in v:
            if not BASE58_ADDRESS.match(address):
                raise ValueError(f"invalid Solana address: {address}")
        return list(dict.fromkeys(v))


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files.

    Example:
        ```python
        from solana_whale_tracker.config import get_settings

        settings = get_settings()
        print(settings.tracker.wallets)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested configuration groups
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    rpc: RpcSettings = Field(default_factory=RpcSettings)
    tracker: TrackerSettings = Field(default_factory=TrackerSettings)

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    health_port: int = Field(
        default=8080,
        alias="HEALTH_PORT",
        description="HTTP port for health check endpoints; 0 disables the server",
        ge=0,
        le=65535,
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without sending actual alerts",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        tracker = self.tracker
        return {
            "telegram_bot_token": "(set)",
            "telegram_api_url": self.telegram.api_url,
            "helius_api_key": "(set)" if self.providers.helius_api_key else "(not set)",
            "provider_timeout": str(self.providers.timeout),
            "rpc_urls": ", ".join(self.rpc.urls),
            "wallets": str(len(tracker.wallets)),
            "mode": tracker.mode,
            "poll_interval": str(tracker.poll_interval),
            "min_alert_amount": str(tracker.min_alert_amount),
            "rate_limit": f"{tracker.rate_limit_capacity}/{tracker.rate_limit_window}s",
            "log_level": self.log_level,
            "health_port": str(self.health_port),
            "dry_run": str(self.dry_run),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
