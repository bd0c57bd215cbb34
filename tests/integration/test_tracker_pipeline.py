import asyncio
from pathlib import Path
from typing import Any

import httpx
import pytest

from cryptoglance.__main__ import _parse_args
from cryptoglance.config import PollConfig
from cryptoglance.coordinator import PollingCoordinator
from cryptoglance.fetcher import RetryingFetcher
from cryptoglance.history import HistoricalSeriesAggregator
from cryptoglance.models import PriceSnapshot, TrackerState
from cryptoglance.prices import CurrentPriceAggregator
from cryptoglance.publisher import StatePublisher
from cryptoglance.symbols import SymbolMapper

BASE_URL = "https://api.test"
T0 = 1_700_000_000
HOUR = 3_600
DAY = 86_400

PRICES = {"BTC": 65000.0, "ETH": 3200.0}


class FakeCryptoCompare:
    """Serves the price and history endpoints for a fixed set of symbols.

    Symbols listed in `broken` answer every history request with HTTP 500.
    """

    def __init__(self, broken: frozenset[str] = frozenset()) -> None:
        self.broken = broken
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        params = request.url.params
        if request.url.path == "/data/pricemultifull":
            tsym = params["tsyms"]
            raw = {
                sym: {tsym: {"PRICE": PRICES[sym], "CHANGEPCT24HOUR": 1.5}}
                for sym in params["fsyms"].split(",")
                if sym in PRICES
            }
            return httpx.Response(200, json={"RAW": raw})

        fsym = params["fsym"]
        if fsym in self.broken or fsym not in PRICES:
            return httpx.Response(500)
        step = HOUR if request.url.path.endswith("histohour") else DAY
        limit = min(int(params["limit"]), 3)
        data = [
            {"time": T0 + i * step, "close": PRICES[fsym] + i / 2}
            for i in range(limit)
        ]
        return httpx.Response(200, json=self._history_body(data))

    @staticmethod
    def _history_body(data: list[dict[str, Any]]) -> dict[str, Any]:
        return {"Response": "Success", "Data": {"Data": data}}


def build_coordinator(
    api: FakeCryptoCompare, publisher: StatePublisher | None = None
) -> tuple[PollingCoordinator, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    fetcher = RetryingFetcher(client, base_delay_ms=0)
    mapper = SymbolMapper()
    coordinator = PollingCoordinator(
        CurrentPriceAggregator(fetcher, mapper, BASE_URL),
        HistoricalSeriesAggregator(fetcher, mapper, BASE_URL, pacing_delay_ms=0),
        PollConfig(),
        publisher,
    )
    return coordinator, client


@pytest.mark.asyncio
async def test_full_refresh_cycle_produces_prices_and_chart() -> None:
    api = FakeCryptoCompare()
    coordinator, client = build_coordinator(api)

    async with client, coordinator:
        await coordinator.update("USD", ["BTC", "ETH"])

    state = coordinator.state
    assert state.error is None
    assert state.is_loading is False
    assert state.price_data == {
        "BTC": PriceSnapshot(price=65000.0, change_24h=1.5),
        "ETH": PriceSnapshot(price=3200.0, change_24h=1.5),
    }
    assert [p.timestamp for p in state.chart_data] == [
        "2023-11-14T22:13:20.000Z",
        "2023-11-15T22:13:20.000Z",
        "2023-11-16T22:13:20.000Z",
    ]
    assert state.chart_data[1].to_dict() == {
        "date": "2023-11-15T22:13:20.000Z",
        "BTC": 65000.5,
        "ETH": 3200.5,
    }
    assert api.paths.count("/data/v2/histoday") == 2


@pytest.mark.asyncio
async def test_one_day_period_switches_to_hourly_points() -> None:
    api = FakeCryptoCompare()
    coordinator, client = build_coordinator(api)

    async with client, coordinator:
        await coordinator.update("EUR", ["BTC"])
        await coordinator.change_period("1")

    chart = coordinator.state.chart_data
    assert api.paths[-1] == "/data/v2/histohour"
    assert [p.timestamp for p in chart] == [
        "2023-11-14T22:13:20.000Z",
        "2023-11-14T23:13:20.000Z",
        "2023-11-15T00:13:20.000Z",
    ]


@pytest.mark.asyncio
async def test_one_broken_asset_still_yields_a_chart() -> None:
    api = FakeCryptoCompare(broken=frozenset({"ETH"}))
    coordinator, client = build_coordinator(api)

    async with client, coordinator:
        await coordinator.update("USD", ["BTC", "ETH"])

    state = coordinator.state
    assert state.error is None
    assert state.chart_data
    assert all(set(p.values) == {"BTC"} for p in state.chart_data)
    assert state.price_data["ETH"] == PriceSnapshot(price=3200.0, change_24h=1.5)


@pytest.mark.asyncio
async def test_unknown_asset_is_unavailable_everywhere() -> None:
    api = FakeCryptoCompare()
    coordinator, client = build_coordinator(api)

    async with client, coordinator:
        await coordinator.update("USD", ["BTC", "NOPE"])

    state = coordinator.state
    assert state.price_data["NOPE"] is None
    assert all("NOPE" not in p.values for p in state.chart_data)


@pytest.mark.asyncio
async def test_subscriber_sees_progress_then_final_state() -> None:
    api = FakeCryptoCompare()
    publisher = StatePublisher()
    queue: asyncio.Queue[TrackerState] = asyncio.Queue()
    await publisher.subscribe(queue)
    coordinator, client = build_coordinator(api, publisher)

    async with client, coordinator:
        await coordinator.update("USD", ["bitcoin"])

    states: list[TrackerState] = []
    while not queue.empty():
        states.append(queue.get_nowait())
    assert "Fetching Bitcoin price history..." in [s.loading_status for s in states]
    assert states[-1] == coordinator.state
    assert states[-1].price_data["bitcoin"] is not None


def test_command_line_options() -> None:
    args = _parse_args(
        [
            "--currency",
            "eur",
            "--assets",
            "BTC,ETH",
            "--period",
            "30",
            "--no-auto-refresh",
            "--interval-ms",
            "10000",
            "--config",
            "/tmp/c.toml",
        ]
    )
    assert args.currency == "eur"
    assert args.assets == "BTC,ETH"
    assert args.period == "30"
    assert args.auto_refresh is False
    assert args.interval_ms == 10_000
    assert args.config == Path("/tmp/c.toml")


def test_command_line_defaults_defer_to_config() -> None:
    args = _parse_args([])
    assert args.auto_refresh is None
    assert args.interval_ms is None
    assert args.period is None


def test_command_line_rejects_unknown_period() -> None:
    with pytest.raises(SystemExit):
        _parse_args(["--period", "14"])
