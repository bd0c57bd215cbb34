# src/cryptoglance/__init__.py
"""cryptoglance: near-real-time crypto price and chart tracking.

This package contains the price acquisition pipeline that feeds a tracker
front-end with current prices and merged historical charts for a set of
cryptocurrencies, converted into a chosen fiat currency.

The pipeline is built on asyncio and a single shared httpx client, so every
network call and pacing delay is a cooperative suspension point.

Key modules:
- `fetcher`: HTTP GET with bounded retries and exponential backoff.
- `symbols`: canonical asset id <-> CryptoCompare symbol translation.
- `prices`: batched current price snapshots.
- `history`: per-asset history fetches merged into one chart series.
- `coordinator`: the refresh lifecycle and poll timer.
"""

# The version is managed in pyproject.toml and is dynamically
# retrieved here using importlib.metadata.
import importlib.metadata

try:
    __version__: str = importlib.metadata.version("cryptoglance")
except importlib.metadata.PackageNotFoundError:
    # Development checkout that has not been installed yet.
    __version__ = "0.0.0-dev"
