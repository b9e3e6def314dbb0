"""Thread-safe in-memory cache for ranked assets and historical series."""

import threading

from market_sync.models.market_data import Asset, Series


class MarketDataCache:
    """
    Keyed store holding the current ranked-asset snapshot and historical series.

    Every method takes the internal lock, so callers never synchronize
    themselves. Collections handed out are copies; mutating them has no
    effect on the cache.
    """

    def __init__(self):
        """Initialize an empty cache."""
        self._lock = threading.RLock()
        self._ranked_list: list[Asset] = []
        # Format: {(asset_id, interval): Series}
        self._series: dict[tuple[str, str], Series] = {}

    def has_ranked_list(self) -> bool:
        with self._lock:
            return bool(self._ranked_list)

    def get_ranked_list(self) -> list[Asset]:
        """Return a copy of the ranked snapshot (empty if none is stored)."""
        with self._lock:
            return list(self._ranked_list)

    def set_ranked_list(self, assets: list[Asset] | None) -> None:
        """
        Replace the ranked snapshot.

        Args:
            assets: Complete list from one successful fetch; empty or None
                leaves the snapshot absent
        """
        snapshot = list(assets) if assets else []
        with self._lock:
            self._ranked_list = snapshot

    def has_series(self, asset_id: str, interval: str) -> bool:
        with self._lock:
            return (asset_id, interval) in self._series

    def get_series(self, asset_id: str, interval: str) -> Series:
        """Return the cached series for a key, or an empty series if absent."""
        with self._lock:
            series = self._series.get((asset_id, interval))
        # Series is immutable, so a fresh wrapper over the same points is an independent copy
        return Series(series.points) if series is not None else Series()

    def put_series(self, asset_id: str, interval: str, series: Series | None) -> None:
        """Insert or replace the series stored under (asset_id, interval)."""
        stored = Series(series.points) if series is not None else Series()
        with self._lock:
            self._series[(asset_id, interval)] = stored

    def series_count(self) -> int:
        """Number of distinct (asset_id, interval) keys currently stored."""
        with self._lock:
            return len(self._series)

    def clear(self) -> None:
        """Empty both the ranked snapshot and the series store."""
        with self._lock:
            self._ranked_list = []
            self._series = {}
