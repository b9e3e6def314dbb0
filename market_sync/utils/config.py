"""Configuration management for the market data sync engine."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_API_URL = "https://api.coingecko.com/api/v3"
DEFAULT_RETRY_DELAYS = (10.0, 20.0, 30.0, 30.0)


@dataclass
class ProviderConfig:
    """Remote data provider configuration."""

    base_url: str = DEFAULT_API_URL
    api_key: str | None = None
    api_key_header: str = "x-cg-demo-api-key"
    vs_currency: str = "usd"
    timeout: float = 10.0  # Per-request timeout in seconds


@dataclass
class SyncConfig:
    """Retry, recovery and concurrency settings for the fetch orchestrator."""

    retry_delays: list[float] = None  # Delays in seconds between attempts
    batch_delay: float = 5.0
    round_delay: float = 5.0
    batch_size: int = 5
    max_recovery_rounds: int = 3
    ranked_list_limit: int = 5
    max_workers: int = 32

    def __post_init__(self):
        if self.retry_delays is None:
            # Default: 10s, 20s, 30s, 30s
            self.retry_delays = list(DEFAULT_RETRY_DELAYS)


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


def _parse_delays(raw: str | None) -> list[float] | None:
    if raw is None or not raw.strip():
        return None
    return [float(part) for part in raw.split(",") if part.strip()]


@dataclass
class Config:
    """Main configuration, read from the environment when built with ``from_env``."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration from environment variables, using defaults when absent."""
        provider = ProviderConfig(
            base_url=os.getenv("COINGECKO_API_URL", DEFAULT_API_URL).rstrip("/"),
            api_key=os.getenv("COINGECKO_API_KEY") or None,
            api_key_header=os.getenv("COINGECKO_API_KEY_HEADER", "x-cg-demo-api-key"),
            vs_currency=os.getenv("VS_CURRENCY", "usd"),
            timeout=float(os.getenv("REQUEST_TIMEOUT", "10")),
        )

        sync = SyncConfig(
            retry_delays=_parse_delays(os.getenv("RETRY_DELAYS")),
            batch_delay=float(os.getenv("BATCH_DELAY", "5")),
            round_delay=float(os.getenv("ROUND_DELAY", "5")),
            batch_size=int(os.getenv("RECOVERY_BATCH_SIZE", "5")),
            max_recovery_rounds=int(os.getenv("MAX_RECOVERY_ROUNDS", "3")),
            ranked_list_limit=int(os.getenv("RANKED_LIST_LIMIT", "5")),
            max_workers=int(os.getenv("MAX_PARALLEL_REQUESTS", "32")),
        )

        logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE") or None,
        )

        return cls(provider=provider, sync=sync, logging=logging)

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        if not self.provider.base_url:
            raise ValueError("COINGECKO_API_URL must not be empty")
        if not self.provider.base_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid provider URL: {self.provider.base_url}")
        if self.provider.timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive")

        if any(delay < 0 for delay in self.sync.retry_delays):
            raise ValueError("RETRY_DELAYS must not contain negative values")
        if self.sync.batch_delay < 0 or self.sync.round_delay < 0:
            raise ValueError("BATCH_DELAY and ROUND_DELAY must not be negative")
        if self.sync.batch_size < 1:
            raise ValueError("RECOVERY_BATCH_SIZE must be at least 1")
        if self.sync.max_recovery_rounds < 0:
            raise ValueError("MAX_RECOVERY_ROUNDS must not be negative")
        if self.sync.ranked_list_limit < 1:
            raise ValueError("RANKED_LIST_LIMIT must be at least 1")
        if self.sync.max_workers < 1:
            raise ValueError("MAX_PARALLEL_REQUESTS must be at least 1")

        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.logging.level}")

        return True
