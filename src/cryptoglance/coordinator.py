import asyncio
import contextlib
import enum
import types
from collections.abc import Sequence
from typing import Self

from loguru import logger

from cryptoglance.config import PollConfig
from cryptoglance.history import DEFAULT_LOOKBACK_PERIOD, HistoricalSeriesAggregator
from cryptoglance.models import ChartSeries, PriceData, TrackerState
from cryptoglance.prices import CurrentPriceAggregator
from cryptoglance.publisher import StatePublisher

PRICE_STATUS = "Fetching current prices..."
PRICE_ERROR = "Failed to fetch price data"
CHART_ERROR = "Failed to fetch chart data"


class PollState(enum.Enum):
    IDLE = "idle"
    POLLING = "polling"


class PollingCoordinator:
    """Owns the refresh lifecycle of prices and charts.

    Any change of currency, asset set or poll config cancels the recurring
    timer, clears the error, fetches prices and the default chart right
    away and, if auto refresh is on, arms exactly one new timer. The timer
    refreshes prices only; charts are refetched on input or period changes.

    Overlapping fetches of the same kind are resolved by sequence number:
    a result that arrives after a newer request of its kind was started is
    discarded instead of overwriting fresher state.
    """

    def __init__(
        self,
        price_aggregator: CurrentPriceAggregator,
        history_aggregator: HistoricalSeriesAggregator,
        poll_config: PollConfig | None = None,
        publisher: StatePublisher | None = None,
    ) -> None:
        self.price_aggregator = price_aggregator
        self.history_aggregator = history_aggregator
        self.poll_config = poll_config or PollConfig()
        self.publisher = publisher or StatePublisher()

        self.currency: str | None = None
        self.asset_ids: tuple[str, ...] = ()
        self.lookback_period = DEFAULT_LOOKBACK_PERIOD

        self._price_data: PriceData = {}
        self._chart_data: ChartSeries = []
        self._error: str | None = None
        self._price_status = ""
        self._chart_status = ""
        self._prices_in_flight = 0
        self._charts_in_flight = 0
        self._price_seq = 0
        self._chart_seq = 0

        self._started = False
        self._timer: asyncio.Task[None] | None = None
        self._refresh_tasks: set[asyncio.Task[None]] = set()

    # --- Outbound state ---

    @property
    def state(self) -> TrackerState:
        """An immutable snapshot of everything the UI layer reads."""
        return TrackerState(
            price_data=dict(self._price_data),
            chart_data=list(self._chart_data),
            is_loading=self._charts_in_flight > 0
            or (self._prices_in_flight > 0 and not self._price_data),
            error=self._error,
            loading_status=self._chart_status or self._price_status,
        )

    @property
    def poll_state(self) -> PollState:
        if self._timer is not None and not self._timer.done():
            return PollState.POLLING
        return PollState.IDLE

    def _publish(self) -> None:
        self.publisher.publish(self.state)

    # --- Inputs ---

    async def update(
        self,
        currency: str | None = None,
        asset_ids: Sequence[str] | None = None,
        poll_config: PollConfig | None = None,
    ) -> None:
        """Applies new inputs and runs one immediate refresh cycle.

        Arguments left as None keep their current value. If nothing changed
        since the last cycle, this is a no-op.

        Raises:
            ValueError: If no currency has ever been provided.
        """
        new_currency = currency if currency is not None else self.currency
        new_assets = tuple(asset_ids) if asset_ids is not None else self.asset_ids
        new_config = poll_config if poll_config is not None else self.poll_config
        if new_currency is None:
            err_msg = "A currency is required before the first refresh."
            raise ValueError(err_msg)

        unchanged = (
            self.currency == new_currency
            and self.asset_ids == new_assets
            and self.poll_config == new_config
        )
        if unchanged and self._started:
            logger.debug("Inputs unchanged; keeping the current refresh cycle.")
            return

        logger.info(
            f"Inputs changed: currency={new_currency}, assets={list(new_assets)}, "
            f"auto_refresh={new_config.auto_refresh_enabled}, "
            f"interval={new_config.refresh_interval_ms}ms"
        )
        self._cancel_timer()
        self._started = True
        self.currency = new_currency
        self.asset_ids = new_assets
        self.poll_config = new_config
        self.lookback_period = DEFAULT_LOOKBACK_PERIOD
        self._error = None
        self._publish()

        cycle = asyncio.gather(
            self.refresh_prices(), self._refresh_chart(self.lookback_period)
        )
        if new_config.auto_refresh_enabled:
            self._arm_timer(new_config)
        else:
            logger.info("Auto-refresh disabled.")
        await cycle

    async def change_period(self, lookback_period: str) -> None:
        """Refetches the chart for another lookback period."""
        logger.info(f"Period changed to: {lookback_period}")
        self.lookback_period = lookback_period
        await self._refresh_chart(lookback_period)

    # --- Refresh cycles ---

    async def refresh_prices(self) -> None:
        """Runs one price cycle; the previous snapshot map is fully replaced."""
        if self.currency is None:
            return
        if not self.asset_ids:
            # Supersedes any price fetch still in flight for the old assets.
            self._price_seq += 1
            self._price_data = {}
            self._publish()
            return

        self._price_seq += 1
        seq = self._price_seq
        currency, asset_ids = self.currency, self.asset_ids
        self._prices_in_flight += 1
        self._price_status = PRICE_STATUS
        self._publish()
        try:
            price_data = await self.price_aggregator.fetch_snapshot(
                currency, asset_ids
            )
        except Exception:
            logger.exception("Error in price data function.")
            if seq == self._price_seq:
                self._error = PRICE_ERROR
        else:
            if seq == self._price_seq:
                self._price_data = price_data
                if self._error == PRICE_ERROR:
                    self._error = None
            else:
                logger.debug(f"Discarding stale price result for {currency}.")
        finally:
            self._prices_in_flight -= 1
            if self._prices_in_flight == 0:
                self._price_status = ""
            self._publish()

    async def _refresh_chart(self, lookback_period: str) -> None:
        if self.currency is None:
            return
        if not self.asset_ids:
            self._chart_seq += 1
            self._chart_status = ""
            return

        self._chart_seq += 1
        seq = self._chart_seq
        currency, asset_ids = self.currency, self.asset_ids

        def on_status(status: str) -> None:
            if seq == self._chart_seq:
                self._chart_status = status
                self._publish()

        self._charts_in_flight += 1
        self._publish()
        try:
            series = await self.history_aggregator.fetch_series(
                currency, asset_ids, lookback_period, on_status=on_status
            )
        except Exception:
            logger.exception("Error fetching chart data.")
            if seq == self._chart_seq:
                self._error = CHART_ERROR
        else:
            if seq != self._chart_seq:
                logger.debug(f"Discarding stale chart result for {currency}.")
            elif series:
                self._chart_data = series
                if self._error == CHART_ERROR:
                    self._error = None
            elif self._chart_data:
                logger.warning("No chart data received; keeping the previous chart.")
        finally:
            self._charts_in_flight -= 1
            if seq == self._chart_seq:
                self._chart_status = ""
            self._publish()

    # --- Timer ---

    def _arm_timer(self, poll_config: PollConfig) -> None:
        self._cancel_timer()
        logger.info(
            f"Auto-refresh enabled with interval: {poll_config.refresh_interval_ms}ms"
        )
        self._timer = asyncio.create_task(
            self._poll_loop(poll_config.refresh_interval_s)
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Recurring price timer cancelled.")

    async def _poll_loop(self, interval_s: float) -> None:
        # Each tick starts a refresh without awaiting it, so cancelling the
        # timer stops future ticks but never aborts a refresh in flight.
        while True:
            await asyncio.sleep(interval_s)
            task = asyncio.create_task(self.refresh_prices())
            self._refresh_tasks.add(task)
            task.add_done_callback(self._refresh_tasks.discard)

    async def stop(self) -> None:
        """Tears down the timer and any timer-started refresh."""
        timer, self._timer = self._timer, None
        self._started = False
        pending = [t for t in (timer, *self._refresh_tasks) if t is not None]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._refresh_tasks.clear()
        logger.info("Polling coordinator stopped.")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.stop()
