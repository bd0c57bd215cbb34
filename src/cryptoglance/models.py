from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from cryptoglance.errors import FetchError

T = TypeVar("T")


@dataclass(frozen=True)
class PriceSnapshot:
    """Current price plus 24-hour percent change for one asset."""

    price: float
    change_24h: float


@dataclass(frozen=True)
class ChartPoint:
    """One timestamp of the merged multi-asset chart.

    `values` only holds the assets that reported a price at this timestamp;
    an asset with no datum is absent rather than mapped to None.
    """

    timestamp: str
    values: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flattens the point into the `{"date": ..., <asset>: price}` row shape."""
        row: dict[str, Any] = {"date": self.timestamp}
        row.update(self.values)
        return row


# Strictly ascending by timestamp, no duplicate timestamps.
ChartSeries = list[ChartPoint]

PriceData = dict[str, PriceSnapshot | None]


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """A logical fetch that failed after every attempt.

    Only the error from the final attempt is kept.
    """

    error: FetchError
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False

    @property
    def reason(self) -> str:
        return str(self.error)


FetchOutcome = Success[T] | Failure


@dataclass(frozen=True)
class TrackerState:
    """Everything the presentation layer reads from the tracker."""

    price_data: PriceData = field(default_factory=dict)
    chart_data: ChartSeries = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
    loading_status: str = ""
