"""CoinGecko request/parse functions for ranked assets and market charts."""

from typing import Any

import requests

from market_sync.models.market_data import (
    Asset,
    FailureKind,
    RemoteFailure,
    SamplePoint,
    Series,
)
from market_sync.utils.config import ProviderConfig
from market_sync.utils.formatting import format_money_short, format_number_short
from market_sync.utils.logger import StructuredLogger

logger = StructuredLogger("CoinGeckoClient")


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_asset(node: dict[str, Any]) -> Asset:
    """
    Build an Asset from one ``/coins/markets`` element.

    Missing numeric fields default to zero and missing text fields to "".
    """
    return Asset(
        id=_as_text(node.get("id")),
        name=_as_text(node.get("name")),
        symbol=_as_text(node.get("symbol")).upper(),
        price=_as_float(node.get("current_price")),
        change_percent=_as_float(node.get("price_change_percentage_24h")),
        market_cap=format_money_short(_as_float(node.get("market_cap"))),
        volume=format_money_short(_as_float(node.get("total_volume"))),
        circulating_supply=format_number_short(_as_float(node.get("circulating_supply"))),
    )


def parse_ranked_list(payload: Any) -> list[Asset]:
    """
    Parse a ``/coins/markets`` payload.

    Args:
        payload: Decoded JSON body

    Returns:
        Assets in provider order; empty if the payload is not an array
    """
    if not isinstance(payload, list):
        logger.warning(
            "Ranked list payload is not an array",
            context={"payload_type": type(payload).__name__},
        )
        return []

    return [parse_asset(node) for node in payload if isinstance(node, dict)]


def _parse_timestamp(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_market_chart(payload: Any) -> Series:
    """
    Parse a ``/coins/{id}/market_chart`` payload.

    ``prices`` and ``total_volumes`` are parallel arrays of ``[timestamp, value]``
    pairs matched by position. A shorter or missing volume array leaves the
    remaining volumes empty. Malformed entries are skipped one at a time.

    Args:
        payload: Decoded JSON body

    Returns:
        Series in provider order; empty if there is no price array
    """
    if not isinstance(payload, dict):
        return Series()

    prices = payload.get("prices")
    volumes = payload.get("total_volumes")
    if not isinstance(prices, list):
        return Series()
    if not isinstance(volumes, list):
        volumes = []

    points = []
    for index, entry in enumerate(prices):
        if not isinstance(entry, list) or len(entry) < 2:
            continue

        millis = _parse_timestamp(entry[0])
        if millis is None:
            continue

        volume = None
        if index < len(volumes):
            volume_entry = volumes[index]
            if isinstance(volume_entry, list) and len(volume_entry) >= 2:
                volume = _optional_float(volume_entry[1])

        try:
            point = SamplePoint.from_epoch_millis(millis, _optional_float(entry[1]), volume)
        except (OverflowError, OSError, ValueError):
            # Timestamp outside the representable range
            continue
        points.append(point)

    return Series(points)


class CoinGeckoClient:
    """Issues single provider calls. Holds no retry or caching policy."""

    def __init__(self, config: ProviderConfig | None = None, session: requests.Session | None = None):
        """
        Initialize the client.

        Args:
            config: Provider endpoint, API key and timeout settings
            session: Optional HTTP session (a new one is created if omitted)
        """
        self.config = config or ProviderConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        # The API key header is optional and only sent when configured
        if self.config.api_key and self.config.api_key.strip():
            headers[self.config.api_key_header] = self.config.api_key.strip()
        return headers

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        """
        Perform one GET request.

        Returns:
            Decoded JSON body (None if undecodable) or a RemoteFailure
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(
                url, params=params, headers=self._headers(), timeout=self.config.timeout
            )
        except requests.RequestException as e:
            return RemoteFailure(kind=FailureKind.TRANSIENT, message=str(e))

        status = response.status_code
        if 200 <= status < 300:
            try:
                return response.json()
            except ValueError:
                logger.warning("Provider returned an undecodable body", context={"url": url})
                return None

        if status == 429:
            kind = FailureKind.RATE_LIMITED
        elif status >= 500:
            kind = FailureKind.TRANSIENT
        else:
            kind = FailureKind.HTTP_ERROR
        return RemoteFailure(kind=kind, status_code=status, message=f"{url} returned {status}")

    def fetch_ranked_list(self, limit: int) -> list[Asset] | RemoteFailure:
        """
        Fetch the top assets by market capitalization.

        Args:
            limit: Number of assets to request

        Returns:
            Parsed assets (possibly empty) or a RemoteFailure
        """
        params = {
            "vs_currency": self.config.vs_currency,
            "order": "market_cap_desc",
            "per_page": limit,
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        body = self._get("/coins/markets", params)
        if isinstance(body, RemoteFailure):
            return body
        return parse_ranked_list(body)

    def fetch_series(self, asset_id: str, interval: str) -> Series | RemoteFailure:
        """
        Fetch the price/volume history of one asset.

        Args:
            asset_id: Provider asset id (e.g. "bitcoin")
            interval: Opaque window selector passed through as ``days``

        Returns:
            Parsed series (possibly empty) or a RemoteFailure
        """
        params = {"vs_currency": self.config.vs_currency, "days": interval}
        body = self._get(f"/coins/{asset_id}/market_chart", params)
        if isinstance(body, RemoteFailure):
            return body
        return parse_market_chart(body)
