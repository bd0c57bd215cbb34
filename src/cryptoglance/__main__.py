"""Headless entry point: tracks prices in the terminal until interrupted.

Usage:
    python -m cryptoglance --currency EUR --assets BTC,ETH --auto-refresh
"""

import argparse
import asyncio
import contextlib
import sys
from collections.abc import Sequence
from pathlib import Path

import httpx
from loguru import logger

from cryptoglance.config import CONFIG_FILE, ConfigStore, get_api_key
from cryptoglance.coordinator import PollingCoordinator
from cryptoglance.fetcher import RetryingFetcher
from cryptoglance.history import LOOKBACK_TABLE, HistoricalSeriesAggregator
from cryptoglance.logging_config import setup_logging
from cryptoglance.models import TrackerState
from cryptoglance.prices import CurrentPriceAggregator
from cryptoglance.publisher import StatePublisher
from cryptoglance.symbols import SymbolMapper, currency_symbol


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cryptoglance",
        description="Track cryptocurrency prices and charts in a fiat currency.",
    )
    parser.add_argument("--currency", help="3-letter fiat code, e.g. USD.")
    parser.add_argument(
        "--assets", help="Comma-separated asset ids, e.g. BTC,ETH,SOL."
    )
    parser.add_argument(
        "--period",
        choices=sorted(LOOKBACK_TABLE, key=int),
        help="Chart lookback in days.",
    )
    parser.add_argument(
        "--auto-refresh",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Refresh prices on a timer (saved to the config file).",
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        help="Price refresh interval in milliseconds (saved to the config file).",
    )
    parser.add_argument("--config", type=Path, help="Path to a config.toml file.")
    parser.add_argument("--log-level", help="Console log level, e.g. DEBUG.")
    return parser.parse_args(argv)


def _log_state(state: TrackerState, currency: str) -> None:
    if state.loading_status:
        logger.info(f"Status: {state.loading_status}")
        return
    if state.error:
        logger.error(state.error)
    symbol = currency_symbol(currency)
    for asset_id, snapshot in state.price_data.items():
        if snapshot is None:
            logger.info(f"{asset_id}: unavailable")
        else:
            logger.info(
                f"{asset_id}: {symbol}{snapshot.price:,.2f} "
                f"({snapshot.change_24h:+.2f}% 24h)"
            )
    if state.chart_data:
        first, last = state.chart_data[0], state.chart_data[-1]
        logger.info(
            f"Chart: {len(state.chart_data)} points "
            f"from {first.timestamp} to {last.timestamp}"
        )


async def _consume(queue: "asyncio.Queue[TrackerState]", currency: str) -> None:
    last: TrackerState | None = None
    while True:
        state = await queue.get()
        if state != last and (state.loading_status or not state.is_loading):
            _log_state(state, currency)
        last = state
        queue.task_done()


async def main_async(argv: Sequence[str] | None = None) -> int:
    """The main async entry point for the application."""
    args = _parse_args(argv)
    store = ConfigStore(args.config or CONFIG_FILE)
    settings = store.settings

    log_dir = (
        Path(settings.general.log_directory)
        if settings.general.log_directory
        else None
    )
    setup_logging(
        console_level=args.log_level or settings.general.log_level_console,
        file_level=settings.general.log_level_file,
        log_dir=log_dir,
    )

    if args.auto_refresh is not None or args.interval_ms is not None:
        store.update_poll(args.auto_refresh, args.interval_ms)

    currency = (args.currency or settings.tracker.currency).upper()
    assets = (
        [a.strip() for a in args.assets.split(",") if a.strip()]
        if args.assets
        else list(settings.tracker.assets)
    )
    period = args.period or settings.tracker.lookback_period

    mapper = SymbolMapper()
    publisher = StatePublisher()
    queue: asyncio.Queue[TrackerState] = asyncio.Queue(maxsize=100)
    await publisher.subscribe(queue)

    async with httpx.AsyncClient(
        http2=True, timeout=settings.api.timeout_s, follow_redirects=True
    ) as http_client:
        fetcher = RetryingFetcher(
            http_client,
            api_key=get_api_key(),
            max_attempts=settings.api.max_attempts,
            base_delay_ms=settings.api.base_delay_ms,
        )
        coordinator = PollingCoordinator(
            CurrentPriceAggregator(fetcher, mapper, settings.api.base_url),
            HistoricalSeriesAggregator(
                fetcher,
                mapper,
                settings.api.base_url,
                pacing_delay_ms=settings.api.pacing_delay_ms,
            ),
            publisher=publisher,
        )
        consumer = asyncio.create_task(_consume(queue, currency))
        try:
            async with coordinator:
                await coordinator.update(currency, assets, store.poll_config)
                if period != coordinator.lookback_period:
                    await coordinator.change_period(period)
                # Keep running until interrupted; the poll timer does the work.
                await asyncio.Event().wait()
        finally:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
            logger.success("Shutdown complete.")
    return 0


def main() -> None:
    """The synchronous entry point for the application."""
    try:
        exit_code = asyncio.run(main_async())
    except KeyboardInterrupt:
        exit_code = 0
    except Exception:
        logger.exception("An unhandled exception reached the top-level entry point.")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
