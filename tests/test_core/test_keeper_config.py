"""Tests for keeper configuration settings."""

import os
from unittest.mock import patch

import pytest

from keeper.core import config
from keeper.core.config import ConfigurationError, Settings


def make_settings(**env: str) -> Settings:
    with patch.dict(os.environ, env, clear=True):
        return Settings(_env_file=None)


class TestKeeperSettingsDefaults:
    """Test default values."""

    def test_should_have_default_loop_settings(self):
        """Test the loop cadence and confirmation defaults."""
        # Arrange & Act
        settings = make_settings()

        # Assert
        assert settings.POLL_INTERVAL == 10.0
        assert settings.CONFIRMATION_TIMEOUT == 120.0
        assert settings.CONFIRMATION_RETRIES == 3
        assert settings.CHAIN_ID == 50311

    def test_should_have_default_optimizer_settings(self):
        """Test optimizer inputs default to the reference prices."""
        settings = make_settings()

        assert settings.REWARD_RATE_PER_ITEM == 0.001
        assert settings.REFERENCE_PRICE_A == 2000.0
        assert settings.REFERENCE_PRICE_B == 20.0
        assert settings.MAX_BATCH_SIZE == 50
        assert settings.BATCH_BASE_GAS == 60_000
        assert settings.PER_ITEM_GAS == 25_000

    def test_should_leave_credentials_unset(self):
        settings = make_settings()

        assert settings.LUCIDPAY_ADDRESS is None
        assert settings.KEEPER_PRIVATE_KEY is None
        assert settings.METRICS_PORT is None

    def test_should_default_feed_limit(self):
        assert make_settings().FEED_LIMIT == 50

    def test_should_not_build_settings_at_import(self):
        """Entry points build Settings themselves so env changes take effect."""
        assert not hasattr(config, "settings")


class TestKeeperSettingsOverrides:
    """Test environment overrides and validation."""

    def test_should_override_poll_interval_via_environment(self):
        """Test POLL_INTERVAL can be overridden via environment."""
        # Arrange & Act
        settings = make_settings(POLL_INTERVAL="2.5", MAX_BATCH_SIZE="10")

        # Assert
        assert settings.POLL_INTERVAL == 2.5
        assert settings.MAX_BATCH_SIZE == 10

    @pytest.mark.parametrize(
        "name, value",
        [
            ("POLL_INTERVAL", "0"),
            ("MAX_BATCH_SIZE", "0"),
            ("CONFIRMATION_RETRIES", "-1"),
            ("FEED_LIMIT", "0"),
            ("CHAIN_ID", "not-a-number"),
        ],
    )
    def test_should_raise_validation_error_for_invalid_values(self, name, value):
        """Test invalid values are rejected at startup."""
        with pytest.raises(ValueError):
            make_settings(**{name: value})

    def test_should_raise_backoff_ceiling_to_base(self):
        settings = make_settings(
            CONFIRMATION_BACKOFF_BASE="5", CONFIRMATION_BACKOFF_MAX="1"
        )

        assert settings.CONFIRMATION_BACKOFF_MAX == 5.0


class TestKeeperCredentials:
    """Test startup credential checks."""

    def test_should_fail_fast_without_credentials(self):
        """Test missing contract address and key name both variables."""
        settings = make_settings()

        with pytest.raises(ConfigurationError) as exc_info:
            settings.require_keeper_credentials()

        assert "LUCIDPAY_ADDRESS or KEEPER_PRIVATE_KEY" in str(exc_info.value)

    def test_should_name_only_missing_variable(self):
        settings = make_settings(LUCIDPAY_ADDRESS="0x" + "22" * 20)

        with pytest.raises(ConfigurationError, match="KEEPER_PRIVATE_KEY"):
            settings.require_keeper_credentials()

    def test_should_accept_complete_credentials(self):
        settings = make_settings(
            LUCIDPAY_ADDRESS="0x" + "22" * 20, KEEPER_PRIVATE_KEY="0x" + "11" * 32
        )

        settings.require_keeper_credentials()
