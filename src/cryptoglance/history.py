import asyncio
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Final, Literal

from loguru import logger

from cryptoglance.errors import MalformedResponseError
from cryptoglance.fetcher import RetryingFetcher
from cryptoglance.models import ChartPoint, ChartSeries
from cryptoglance.symbols import SymbolMapper
from cryptoglance.utils.time import ms_to_iso8601, unix_seconds_to_ms

DEFAULT_BASE_URL = "https://min-api.cryptocompare.com"
DEFAULT_LOOKBACK_PERIOD = "7"
DEFAULT_PACING_DELAY_MS = 500

CENT: Final[Decimal] = Decimal("0.01")

Granularity = Literal["hour", "day"]


@dataclass(frozen=True)
class LookbackRequest:
    """How many history buckets to ask for, and of which size."""

    limit: int
    granularity: Granularity

    @property
    def endpoint(self) -> str:
        return "histohour" if self.granularity == "hour" else "histoday"


# Only the one-day view is hourly; "7" asks for 168 buckets on the daily endpoint.
LOOKBACK_TABLE: Final[dict[str, LookbackRequest]] = {
    "1": LookbackRequest(24, "hour"),
    "7": LookbackRequest(168, "day"),
    "30": LookbackRequest(30, "day"),
    "90": LookbackRequest(90, "day"),
    "365": LookbackRequest(365, "day"),
}
FALLBACK_LOOKBACK: Final[LookbackRequest] = LookbackRequest(30, "day")


def resolve_lookback(period: str) -> LookbackRequest:
    """Maps a lookback code to its request; unknown codes get 30 daily buckets."""
    return LOOKBACK_TABLE.get(period, FALLBACK_LOOKBACK)


def round_cents(value: float) -> float:
    """Rounds a price to 2 decimal places, half-up at the cent."""
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def decode_history(payload: Any) -> list[tuple[int, float]]:
    """Decodes a histohour/histoday body into (timestamp_ms, close) pairs.

    Raises:
        MalformedResponseError: If the body is not a successful history payload.
    """
    if not isinstance(payload, dict) or payload.get("Response") != "Success":
        message = payload.get("Message") if isinstance(payload, dict) else None
        err_msg = f"History response was not successful: {message or payload!r}"
        raise MalformedResponseError(err_msg)

    data = payload.get("Data")
    records = data.get("Data") if isinstance(data, dict) else None
    if not isinstance(records, list):
        err_msg = "History response has no 'Data.Data' list."
        raise MalformedResponseError(err_msg)

    points: list[tuple[int, float]] = []
    try:
        for record in records:
            timestamp_ms = unix_seconds_to_ms(record["time"])
            ms_to_iso8601(timestamp_ms)  # rejects out-of-range timestamps
            points.append((timestamp_ms, round_cents(record["close"])))
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        err_msg = f"Malformed history record: {e!r}"
        raise MalformedResponseError(err_msg) from e
    return points


def merge_series(per_asset: dict[str, list[tuple[int, float]]]) -> ChartSeries:
    """Folds per-asset points into one series sorted by timestamp.

    A timestamp reported by only some assets yields a point holding only
    those assets.
    """
    prices_by_timestamp: defaultdict[int, dict[str, float]] = defaultdict(dict)
    for asset_id, points in per_asset.items():
        for timestamp_ms, price in points:
            prices_by_timestamp[timestamp_ms][asset_id] = price

    return [
        ChartPoint(timestamp=ms_to_iso8601(timestamp_ms), values=values)
        for timestamp_ms, values in sorted(prices_by_timestamp.items())
    ]


class HistoricalSeriesAggregator:
    """Fetches per-asset price history and merges it into one chart series.

    Assets are fetched one at a time, in the order given, with a fixed
    pacing delay before every request after the first. An asset whose fetch
    fails is left out of the merge and the loop moves on.

    Progress is exposed through `status` and the optional `on_status`
    callback, e.g. "Fetching Bitcoin price history...", and reset to "" when
    the call completes.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        mapper: SymbolMapper | None = None,
        base_url: str = DEFAULT_BASE_URL,
        pacing_delay_ms: int = DEFAULT_PACING_DELAY_MS,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.mapper = mapper or SymbolMapper()
        self.base_url = base_url.rstrip("/")
        self.pacing_delay_ms = pacing_delay_ms
        self.on_status = on_status
        self.status = ""

    def _set_status(
        self, status: str, on_status: Callable[[str], None] | None
    ) -> None:
        self.status = status
        callback = on_status or self.on_status
        if callback is not None:
            callback(status)

    async def fetch_series(
        self,
        currency: str,
        asset_ids: Sequence[str],
        lookback_period: str = DEFAULT_LOOKBACK_PERIOD,
        on_status: Callable[[str], None] | None = None,
    ) -> ChartSeries | None:
        """Fetches and merges the price history of every asset.

        Args:
            currency: The 3-letter fiat code prices are converted into.
            asset_ids: Ordered canonical asset ids.
            lookback_period: One of "1", "7", "30", "90", "365".
            on_status: Progress callback for this call, overriding the
                aggregator-wide one.

        Returns:
            The merged, strictly ascending series, or None when `asset_ids` is
            empty and there is nothing to do.
        """
        if not asset_ids:
            logger.debug("No assets selected; skipping history fetch.")
            return None

        request = resolve_lookback(lookback_period)
        url = f"{self.base_url}/data/v2/{request.endpoint}"
        per_asset: dict[str, list[tuple[int, float]]] = {}

        try:
            for index, asset_id in enumerate(asset_ids):
                self._set_status(
                    f"Fetching {self.mapper.display_name(asset_id)} price history...",
                    on_status,
                )
                if index > 0:
                    await asyncio.sleep(self.pacing_delay_ms / 1000)

                symbol = self.mapper.to_external(asset_id)
                params = {"fsym": symbol, "tsym": currency, "limit": request.limit}
                outcome = await self.fetcher.fetch(url, params=params)
                if not outcome.ok:
                    logger.warning(
                        f"Error fetching {asset_id} chart data: {outcome.reason}"
                    )
                    continue

                try:
                    per_asset[asset_id] = decode_history(outcome.value)
                except MalformedResponseError as e:
                    logger.warning(f"Error decoding {asset_id} chart data: {e}")
        finally:
            self._set_status("", on_status)

        series = merge_series(per_asset)
        logger.success(
            f"Chart data processed: {len(series)} points for "
            f"{len(per_asset)}/{len(asset_ids)} assets "
            f"(period {lookback_period}, {request.endpoint})."
        )
        return series
