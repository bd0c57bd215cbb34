from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class AssetInfo:
    """Display metadata for a cryptocurrency the tracker offers."""

    id: str
    name: str
    symbol: str
    color: str


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    symbol: str
    name: str


SUPPORTED_ASSETS: Final[tuple[AssetInfo, ...]] = (
    AssetInfo("BTC", "Bitcoin", "BTC", "#F7931A"),
    AssetInfo("ETH", "Ethereum", "ETH", "#627EEA"),
    AssetInfo("USDT", "Tether", "USDT", "#26A17B"),
    AssetInfo("BNB", "BNB", "BNB", "#F0B90B"),
    AssetInfo("SOL", "Solana", "SOL", "#00FFA3"),
)

SUPPORTED_CURRENCIES: Final[tuple[CurrencyInfo, ...]] = (
    CurrencyInfo("USD", "$", "US Dollar"),
    CurrencyInfo("EUR", "€", "Euro"),
    CurrencyInfo("BDT", "৳", "Bangladeshi Taka"),
)

# CoinGecko-style ids -> CryptoCompare ticker symbols.
DEFAULT_SYMBOL_TABLE: Final[dict[str, str]] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "tether": "USDT",
    "binancecoin": "BNB",
    "solana": "SOL",
    "ripple": "XRP",
    "usd-coin": "USDC",
    "cardano": "ADA",
    "dogecoin": "DOGE",
    "avalanche-2": "AVAX",
}


def currency_symbol(code: str) -> str:
    """Returns the display symbol for a fiat code, defaulting to '$'."""
    for currency in SUPPORTED_CURRENCIES:
        if currency.code == code:
            return currency.symbol
    return "$"


class SymbolMapper:
    """Translates between canonical asset ids and the API's ticker symbols.

    Only the forward table is supplied; the reverse table is derived from it
    so the two directions cannot drift apart. Unknown identifiers pass
    through unchanged in both directions.
    """

    def __init__(self, forward: Mapping[str, str] = DEFAULT_SYMBOL_TABLE) -> None:
        self._forward = dict(forward)
        self._reverse: dict[str, str] = {}
        for canonical, external in self._forward.items():
            if external in self._reverse:
                err_msg = (
                    f"Symbol '{external}' is mapped from both "
                    f"'{self._reverse[external]}' and '{canonical}'."
                )
                raise ValueError(err_msg)
            self._reverse[external] = canonical

    def to_external(self, asset_id: str) -> str:
        return self._forward.get(asset_id, asset_id)

    def to_canonical(self, symbol: str) -> str:
        return self._reverse.get(symbol, symbol)

    def display_name(self, asset_id: str) -> str:
        """Returns the human-readable name of an asset, or the id itself."""
        symbol = self.to_external(asset_id)
        for asset in SUPPORTED_ASSETS:
            if asset.id == symbol:
                return asset.name
        return asset_id
