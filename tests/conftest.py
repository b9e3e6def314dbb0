"""Pytest configuration and fixtures."""

import threading
import time
from collections import defaultdict

import pytest

from market_sync.models.market_data import (
    Asset,
    FailureKind,
    RemoteFailure,
    SamplePoint,
    Series,
)
from market_sync.services.market_data_cache import MarketDataCache
from market_sync.services.market_data_service import MarketDataService
from market_sync.utils.config import SyncConfig


def make_series(points: int = 3, start_millis: int = 1_700_000_000_000) -> Series:
    """Build a series with ``points`` hourly samples."""
    return Series(
        SamplePoint.from_epoch_millis(start_millis + i * 3_600_000, 50000.0 + i, 1e9 + i)
        for i in range(points)
    )


def make_assets(*ids: str) -> list[Asset]:
    return [Asset(id=asset_id, name=asset_id.title(), symbol=asset_id[:3].upper()) for asset_id in ids]


class FakeClient:
    """
    In-memory stand-in for the provider client.

    ``series_failures`` maps (asset_id, interval) to the number of leading
    calls that fail; -1 fails forever.
    """

    def __init__(
        self,
        assets: list[Asset] | None = None,
        ranked_failures: int = 0,
        ranked_failure_kind: FailureKind = FailureKind.TRANSIENT,
        series_failures: dict[tuple[str, str], int] | None = None,
        series_failure_kind: FailureKind = FailureKind.RATE_LIMITED,
        latency: float = 0.0,
    ):
        self.assets = assets if assets is not None else make_assets("bitcoin", "ethereum", "solana")
        self.ranked_failures = ranked_failures
        self.ranked_failure_kind = ranked_failure_kind
        self.series_failures = dict(series_failures or {})
        self.series_failure_kind = series_failure_kind
        self.latency = latency

        self.ranked_calls = 0
        self.series_calls: dict[tuple[str, str], int] = defaultdict(int)
        self.in_flight = 0
        self.max_in_flight = 0
        self.max_retry_in_flight = 0
        self._retry_in_flight = 0
        self._lock = threading.Lock()

    @property
    def total_series_calls(self) -> int:
        with self._lock:
            return sum(self.series_calls.values())

    def fetch_ranked_list(self, limit: int):
        with self._lock:
            self.ranked_calls += 1
            call_number = self.ranked_calls
        if self.latency:
            time.sleep(self.latency)
        if call_number <= self.ranked_failures:
            return RemoteFailure(kind=self.ranked_failure_kind, status_code=503, message="unavailable")
        return list(self.assets[:limit])

    def fetch_series(self, asset_id: str, interval: str):
        key = (asset_id, interval)
        with self._lock:
            self.series_calls[key] += 1
            call_number = self.series_calls[key]
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            if call_number > 1:
                self._retry_in_flight += 1
                self.max_retry_in_flight = max(self.max_retry_in_flight, self._retry_in_flight)
        try:
            if self.latency:
                time.sleep(self.latency)
            failures = self.series_failures.get(key, 0)
            if failures == -1 or call_number <= failures:
                return RemoteFailure(kind=self.series_failure_kind, status_code=429, message="slow down")
            return make_series()
        finally:
            with self._lock:
                self.in_flight -= 1
                if call_number > 1:
                    self._retry_in_flight -= 1


class RecordingSink:
    """Progress sink that records every notification."""

    def __init__(self):
        self.asset_events: list[tuple[str, bool]] = []
        self.interval_events: list[tuple[str, bool]] = []
        self._lock = threading.Lock()

    def on_asset_ready(self, asset_id: str, success: bool) -> None:
        with self._lock:
            self.asset_events.append((asset_id, success))

    def on_interval_ready(self, interval_name: str, success: bool) -> None:
        with self._lock:
            self.interval_events.append((interval_name, success))


@pytest.fixture
def fast_config():
    """Sync settings with every delay shrunk to zero."""
    return SyncConfig(
        retry_delays=[0, 0],
        batch_delay=0,
        round_delay=0,
        batch_size=5,
        max_recovery_rounds=3,
        ranked_list_limit=5,
        max_workers=8,
    )


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def cache():
    return MarketDataCache()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def service(fake_client, cache, fast_config):
    svc = MarketDataService(fake_client, cache, fast_config)
    yield svc
    svc.close()
