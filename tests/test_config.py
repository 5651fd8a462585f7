"""Tests for configuration management service."""

from __future__ import annotations

import os
from decimal import Decimal
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from solana_whale_tracker.config import (
    ProviderSettings,
    RpcSettings,
    Settings,
    TelegramSettings,
    TrackerSettings,
    clear_settings_cache,
    get_settings,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

WALLET_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
WALLET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"

REQUIRED_ENV = {
    "TELEGRAM_BOT_TOKEN": "123456:secret-token",
    "TRACKER_WALLETS": WALLET_A,
}


@pytest.fixture(autouse=True)
def clear_cache() -> Iterator[None]:
    """Clear settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestTelegramSettings:
    """Tests for TelegramSettings."""

    def test_token_required(self) -> None:
        """Test a missing bot token raises validation error."""
        with patch.dict(os.environ, {}, clear=True), pytest.raises(ValidationError):
            TelegramSettings()

    def test_token_is_secret(self) -> None:
        """Test the token is not exposed by repr."""
        with patch.dict(os.environ, {"TELEGRAM_BOT_TOKEN": "123456:secret-token"}, clear=True):
            settings = TelegramSettings()
            assert settings.bot_token.get_secret_value() == "123456:secret-token"
            assert "secret-token" not in repr(settings)

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {"TELEGRAM_BOT_TOKEN": "t"}, clear=True):
            settings = TelegramSettings()
            assert settings.api_url == "https://api.telegram.org"
            assert settings.poll_timeout == 30

    def test_invalid_api_url_raises(self) -> None:
        with (
            patch.dict(
                os.environ,
                {"TELEGRAM_BOT_TOKEN": "t", "TELEGRAM_API_URL": "ftp://example.com"},
                clear=True,
            ),
            pytest.raises(ValidationError, match="HTTP"),
        ):
            TelegramSettings()


class TestProviderSettings:
    """Tests for ProviderSettings."""

    def test_helius_key_optional(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = ProviderSettings()
            assert settings.helius_api_key is None
            assert settings.timeout == 5.0

    def test_custom_values(self) -> None:
        with patch.dict(
            os.environ,
            {"HELIUS_API_KEY": "abc", "PROVIDER_TIMEOUT": "2.5", "PROVIDER_PAGE_LIMIT": "20"},
            clear=True,
        ):
            settings = ProviderSettings()
            assert settings.helius_api_key is not None
            assert settings.helius_api_key.get_secret_value() == "abc"
            assert settings.timeout == 2.5
            assert settings.page_limit == 20

    def test_invalid_url_raises(self) -> None:
        with (
            patch.dict(os.environ, {"SOLSCAN_API_URL": "not-a-url"}, clear=True),
            pytest.raises(ValidationError),
        ):
            ProviderSettings()


class TestRpcSettings:
    """Tests for RpcSettings."""

    def test_default_endpoint(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = RpcSettings()
            assert settings.urls == ["https://api.mainnet-beta.solana.com"]

    def test_comma_separated_urls(self) -> None:
        """Test endpoints are split and stripped."""
        with patch.dict(
            os.environ,
            {"SOLANA_RPC_URLS": "https://a.example, https://b.example ,"},
            clear=True,
        ):
            settings = RpcSettings()
            assert settings.urls == ["https://a.example", "https://b.example"]

    def test_invalid_url_raises(self) -> None:
        with (
            patch.dict(os.environ, {"SOLANA_RPC_URLS": "wss://a.example"}, clear=True),
            pytest.raises(ValidationError, match="HTTP"),
        ):
            RpcSettings()


class TestTrackerSettings:
    """Tests for TrackerSettings."""

    def test_wallets_required(self) -> None:
        with patch.dict(os.environ, {}, clear=True), pytest.raises(ValidationError):
            TrackerSettings()

    def test_wallets_split_and_deduplicated(self) -> None:
        """Test wallet list keeps first-seen order without duplicates."""
        with patch.dict(
            os.environ,
            {"TRACKER_WALLETS": f"{WALLET_B}, {WALLET_A},{WALLET_B}"},
            clear=True,
        ):
            settings = TrackerSettings()
            assert settings.wallets == [WALLET_B, WALLET_A]

    def test_invalid_wallet_raises(self) -> None:
        with (
            patch.dict(os.environ, {"TRACKER_WALLETS": "0xdeadbeef"}, clear=True),
            pytest.raises(ValidationError, match="invalid Solana address"),
        ):
            TrackerSettings()

    def test_empty_wallets_raises(self) -> None:
        with (
            patch.dict(os.environ, {"TRACKER_WALLETS": " , "}, clear=True),
            pytest.raises(ValidationError, match="at least one wallet"),
        ):
            TrackerSettings()

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {"TRACKER_WALLETS": WALLET_A}, clear=True):
            settings = TrackerSettings()
            assert settings.mode == "indexer"
            assert settings.min_alert_amount == Decimal(1000)
            assert settings.poll_interval == 30.0
            assert settings.cache_expiry == 3600.0
            assert settings.max_retries == 3
            assert settings.swap_programs is None

    def test_swap_programs_json(self) -> None:
        with patch.dict(
            os.environ,
            {"TRACKER_WALLETS": WALLET_A, "TRACKER_SWAP_PROGRAMS": '{"prog": "Dex"}'},
            clear=True,
        ):
            settings = TrackerSettings()
            assert settings.swap_programs == {"prog": "Dex"}

    def test_invalid_mode_raises(self) -> None:
        with (
            patch.dict(
                os.environ, {"TRACKER_WALLETS": WALLET_A, "TRACKER_MODE": "stream"}, clear=True
            ),
            pytest.raises(ValidationError),
        ):
            TrackerSettings()

    def test_poll_interval_must_be_positive(self) -> None:
        with (
            patch.dict(
                os.environ, {"TRACKER_WALLETS": WALLET_A, "TRACKER_POLL_INTERVAL": "0"}, clear=True
            ),
            pytest.raises(ValidationError),
        ):
            TrackerSettings()


class TestSettings:
    """Tests for main Settings class."""

    def test_loads_with_required_vars(self) -> None:
        """Test settings load with required environment variables."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings()
            assert settings.tracker.wallets == [WALLET_A]
            assert settings.telegram.bot_token.get_secret_value() == "123456:secret-token"

    def test_missing_token_raises(self) -> None:
        with (
            patch.dict(os.environ, {"TRACKER_WALLETS": WALLET_A}, clear=True),
            pytest.raises(ValidationError),
        ):
            Settings()

    def test_default_log_level(self) -> None:
        """Test default log level is INFO."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings()
            assert settings.log_level == "INFO"
            assert settings.dry_run is False

    def test_invalid_log_level_raises(self) -> None:
        """Test invalid log level raises validation error."""
        with (
            patch.dict(os.environ, {**REQUIRED_ENV, "LOG_LEVEL": "TRACE"}, clear=True),
            pytest.raises(ValidationError),
        ):
            Settings()

    def test_health_port_validation(self) -> None:
        """Test health port must be valid port number."""
        with (
            patch.dict(os.environ, {**REQUIRED_ENV, "HEALTH_PORT": "99999"}, clear=True),
            pytest.raises(ValidationError, match="65535"),
        ):
            Settings()

    def test_health_port_zero_disables_server(self) -> None:
        """Test port 0 is accepted as the disabled value."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "HEALTH_PORT": "0"}, clear=True):
            settings = Settings()
            assert settings.health_port == 0

    def test_loads_nested_groups_from_env_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test nested groups read the .env file, not only the process environment."""
        (tmp_path / ".env").write_text(
            "TELEGRAM_BOT_TOKEN=123456:file-token\n"
            f"TRACKER_WALLETS={WALLET_A},{WALLET_B}\n"
            "TRACKER_MODE=swaps\n"
            "HELIUS_API_KEY=file-key\n"
            "SOLANA_RPC_URLS=https://rpc.example\n"
            "LOG_LEVEL=DEBUG\n",
            encoding="utf-8",
        )
        monkeypatch.chdir(tmp_path)

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.telegram.bot_token.get_secret_value() == "123456:file-token"
        assert settings.tracker.wallets == [WALLET_A, WALLET_B]
        assert settings.tracker.mode == "swaps"
        assert settings.providers.helius_api_key is not None
        assert settings.providers.helius_api_key.get_secret_value() == "file-key"
        assert settings.rpc.urls == ["https://rpc.example"]
        assert settings.log_level == "DEBUG"

    def test_get_logging_level(self) -> None:
        """Test get_logging_level returns numeric level."""
        import logging

        with patch.dict(os.environ, {**REQUIRED_ENV, "LOG_LEVEL": "WARNING"}, clear=True):
            settings = Settings()
            assert settings.get_logging_level() == logging.WARNING

    def test_redacted_summary(self) -> None:
        """Test redacted_summary masks sensitive data."""
        with patch.dict(
            os.environ,
            {**REQUIRED_ENV, "HELIUS_API_KEY": "helius-secret"},
            clear=True,
        ):
            settings = Settings()
            summary = settings.redacted_summary()

            rendered = repr(summary)
            assert "secret-token" not in rendered
            assert "helius-secret" not in rendered
            assert summary["helius_api_key"] == "(set)"
            assert summary["telegram_bot_token"] == "(set)"
            assert summary["wallets"] == "1"
            assert all(isinstance(value, str) for value in summary.values())


class TestGetSettings:
    """Tests for get_settings singleton."""

    def test_returns_same_instance(self) -> None:
        """Test get_settings returns cached instance."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings1 = get_settings()
            settings2 = get_settings()
            assert settings1 is settings2

    def test_clear_cache_allows_reload(self) -> None:
        """Test clear_settings_cache allows reloading settings."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "LOG_LEVEL": "INFO"}, clear=True):
            settings1 = get_settings()
            assert settings1.log_level == "INFO"

        clear_settings_cache()

        with patch.dict(os.environ, {**REQUIRED_ENV, "LOG_LEVEL": "DEBUG"}, clear=True):
            settings2 = get_settings()
            assert settings2.log_level == "DEBUG"
            assert settings1 is not settings2
