"""Tests for configuration loading and validation."""

import os
from unittest.mock import patch

import pytest

from market_sync.utils.config import (
    DEFAULT_API_URL,
    Config,
    LoggingConfig,
    ProviderConfig,
    SyncConfig,
)

ENV_KEYS = [
    "COINGECKO_API_URL",
    "COINGECKO_API_KEY",
    "COINGECKO_API_KEY_HEADER",
    "VS_CURRENCY",
    "REQUEST_TIMEOUT",
    "RETRY_DELAYS",
    "BATCH_DELAY",
    "ROUND_DELAY",
    "RECOVERY_BATCH_SIZE",
    "MAX_RECOVERY_ROUNDS",
    "RANKED_LIST_LIMIT",
    "MAX_PARALLEL_REQUESTS",
    "LOG_LEVEL",
    "LOG_FILE",
]


@pytest.fixture
def clean_env():
    """Environment without any sync settings."""
    env = {k: v for k, v in os.environ.items() if k not in ENV_KEYS}
    with patch.dict(os.environ, env, clear=True):
        yield


class TestDefaults:
    """Tests for default configuration values."""

    def test_provider_defaults(self):
        provider = ProviderConfig()
        assert provider.base_url == DEFAULT_API_URL
        assert provider.api_key is None
        assert provider.vs_currency == "usd"
        assert provider.timeout == 10.0

    def test_sync_defaults(self):
        sync = SyncConfig()
        assert sync.retry_delays == [10.0, 20.0, 30.0, 30.0]
        assert sync.batch_delay == 5.0
        assert sync.round_delay == 5.0
        assert sync.batch_size == 5
        assert sync.max_recovery_rounds == 3
        assert sync.ranked_list_limit == 5
        assert sync.max_workers == 32

    def test_retry_delays_are_not_shared(self):
        first, second = SyncConfig(), SyncConfig()
        first.retry_delays.append(99)
        assert second.retry_delays == [10.0, 20.0, 30.0, 30.0]

    def test_default_config_validates(self):
        assert Config().validate() is True


class TestFromEnv:
    """Tests for environment loading."""

    def test_empty_environment_gives_defaults(self, clean_env):
        config = Config.from_env()

        assert config.provider.base_url == DEFAULT_API_URL
        assert config.sync.retry_delays == [10.0, 20.0, 30.0, 30.0]
        assert config.logging == LoggingConfig()

    def test_reads_every_variable(self, clean_env):
        overrides = {
            "COINGECKO_API_URL": "https://pro-api.coingecko.com/api/v3/",
            "COINGECKO_API_KEY": "secret",
            "COINGECKO_API_KEY_HEADER": "x-cg-pro-api-key",
            "VS_CURRENCY": "eur",
            "REQUEST_TIMEOUT": "2.5",
            "RETRY_DELAYS": "1, 2,3",
            "BATCH_DELAY": "0.5",
            "ROUND_DELAY": "1",
            "RECOVERY_BATCH_SIZE": "3",
            "MAX_RECOVERY_ROUNDS": "4",
            "RANKED_LIST_LIMIT": "10",
            "MAX_PARALLEL_REQUESTS": "6",
            "LOG_LEVEL": "debug",
            "LOG_FILE": "/tmp/sync.log",
        }
        with patch.dict(os.environ, overrides):
            config = Config.from_env()

        assert config.provider.base_url == "https://pro-api.coingecko.com/api/v3"
        assert config.provider.api_key == "secret"
        assert config.provider.api_key_header == "x-cg-pro-api-key"
        assert config.provider.vs_currency == "eur"
        assert config.provider.timeout == 2.5
        assert config.sync.retry_delays == [1.0, 2.0, 3.0]
        assert config.sync.batch_delay == 0.5
        assert config.sync.round_delay == 1.0
        assert config.sync.batch_size == 3
        assert config.sync.max_recovery_rounds == 4
        assert config.sync.ranked_list_limit == 10
        assert config.sync.max_workers == 6
        assert config.logging.level == "DEBUG"
        assert config.logging.file_path == "/tmp/sync.log"
        assert config.validate() is True

    def test_blank_retry_delays_use_default(self, clean_env):
        with patch.dict(os.environ, {"RETRY_DELAYS": "  "}):
            assert Config.from_env().sync.retry_delays == [10.0, 20.0, 30.0, 30.0]

    def test_blank_api_key_is_none(self, clean_env):
        with patch.dict(os.environ, {"COINGECKO_API_KEY": ""}):
            assert Config.from_env().provider.api_key is None

    def test_malformed_number_raises(self, clean_env):
        with patch.dict(os.environ, {"RECOVERY_BATCH_SIZE": "five"}):
            with pytest.raises(ValueError):
                Config.from_env()


class TestValidate:
    """Tests for configuration validation."""

    @pytest.mark.parametrize(
        "mutate,message",
        [
            (lambda c: setattr(c.provider, "base_url", ""), "must not be empty"),
            (lambda c: setattr(c.provider, "base_url", "ftp://example.com"), "Invalid provider URL"),
            (lambda c: setattr(c.provider, "timeout", 0), "REQUEST_TIMEOUT"),
            (lambda c: setattr(c.sync, "retry_delays", [1, -1]), "RETRY_DELAYS"),
            (lambda c: setattr(c.sync, "batch_delay", -1), "BATCH_DELAY"),
            (lambda c: setattr(c.sync, "round_delay", -0.5), "ROUND_DELAY"),
            (lambda c: setattr(c.sync, "batch_size", 0), "RECOVERY_BATCH_SIZE"),
            (lambda c: setattr(c.sync, "max_recovery_rounds", -1), "MAX_RECOVERY_ROUNDS"),
            (lambda c: setattr(c.sync, "ranked_list_limit", 0), "RANKED_LIST_LIMIT"),
            (lambda c: setattr(c.sync, "max_workers", 0), "MAX_PARALLEL_REQUESTS"),
            (lambda c: setattr(c.logging, "level", "LOUD"), "Invalid log level"),
        ],
    )
    def test_invalid_settings_raise(self, mutate, message):
        config = Config()
        mutate(config)

        with pytest.raises(ValueError, match=message):
            config.validate()

    def test_empty_retry_ladder_is_valid(self):
        config = Config(sync=SyncConfig(retry_delays=[]))
        assert config.validate() is True

    def test_zero_recovery_rounds_is_valid(self):
        config = Config(sync=SyncConfig(max_recovery_rounds=0))
        assert config.validate() is True
