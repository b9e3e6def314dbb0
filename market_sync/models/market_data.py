"""Market data models for ranked assets and historical series."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


@dataclass(frozen=True)
class Asset:
    """A ranked asset snapshot as delivered by the provider.

    Identity is the provider-assigned ``id``: two assets with the same id
    compare equal and hash alike regardless of the other fields.
    """

    id: str
    name: str = field(default="", compare=False)
    symbol: str = field(default="", compare=False)
    price: float = field(default=0.0, compare=False)
    change_percent: float = field(default=0.0, compare=False)
    market_cap: str = field(default="$0", compare=False)
    volume: str = field(default="$0", compare=False)
    circulating_supply: str = field(default="0", compare=False)

    @property
    def price_formatted(self) -> str:
        return f"${self.price:,.2f}"

    @property
    def change_formatted(self) -> str:
        arrow = "▲" if self.change_percent >= 0 else "▼"
        return f"{arrow}{abs(self.change_percent):.2f}%"


@dataclass(frozen=True)
class SamplePoint:
    """A single timestamped price/volume sample. Either value may be missing."""

    timestamp: datetime
    price: float | None = None
    volume: float | None = None

    @property
    def epoch_millis(self) -> int:
        return int(round(self.timestamp.timestamp() * 1000))

    @classmethod
    def from_epoch_millis(
        cls, millis: int, price: float | None = None, volume: float | None = None
    ) -> "SamplePoint":
        """Build a point from a provider timestamp in epoch milliseconds."""
        return cls(
            timestamp=datetime.fromtimestamp(millis / 1000, tz=UTC),
            price=price,
            volume=volume,
        )


@dataclass(frozen=True)
class Series:
    """Historical samples in provider order. An empty series is a valid result."""

    points: tuple[SamplePoint, ...] = ()

    def __post_init__(self):
        # Accept any iterable but always store an immutable tuple
        object.__setattr__(self, "points", tuple(self.points))

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def __getitem__(self, index):
        return self.points[index]

    @property
    def is_empty(self) -> bool:
        return not self.points


@dataclass(frozen=True)
class Interval:
    """A history window: stable key, display name and provider selector."""

    key: str
    display_name: str
    selector: str


# Ordered shortest to longest
INTERVALS: tuple[Interval, ...] = (
    Interval(key="day", display_name="1D", selector="1"),
    Interval(key="week", display_name="1W", selector="7"),
    Interval(key="month", display_name="1M", selector="30"),
    Interval(key="quarter", display_name="3M", selector="90"),
    Interval(key="year", display_name="1Y", selector="365"),
)

DEFAULT_INTERVAL = INTERVALS[0]


class FailureKind(str, Enum):
    """Classification of a failed provider call."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"


@dataclass(frozen=True)
class RemoteFailure:
    """Structured outcome of a provider call that did not succeed."""

    kind: FailureKind
    status_code: int | None = None
    message: str = ""

    @property
    def retryable(self) -> bool:
        return self.kind in (FailureKind.TRANSIENT, FailureKind.RATE_LIMITED)


@dataclass(frozen=True)
class FailedLoad:
    """A preload task that stayed unresolved after every recovery round."""

    asset_id: str
    asset_name: str
    selector: str
    interval_name: str
    reason: str = "exhausted"
