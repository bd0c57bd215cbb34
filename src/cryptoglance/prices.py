from collections.abc import Sequence
from typing import Any

from loguru import logger

from cryptoglance.fetcher import RetryingFetcher
from cryptoglance.models import PriceData, PriceSnapshot
from cryptoglance.symbols import SymbolMapper

DEFAULT_BASE_URL = "https://min-api.cryptocompare.com"


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


class CurrentPriceAggregator:
    """Fetches price snapshots for a set of assets in one batched request.

    The result always holds one entry per requested asset. An asset the API
    did not report, or reported without both price fields, maps to None; a
    request that fails after every retry maps all assets to None.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        mapper: SymbolMapper | None = None,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self.fetcher = fetcher
        self.mapper = mapper or SymbolMapper()
        self.url = f"{base_url.rstrip('/')}/data/pricemultifull"

    async def fetch_snapshot(
        self, currency: str, asset_ids: Sequence[str]
    ) -> PriceData:
        """Fetches the current price and 24h change of every asset.

        Args:
            currency: The 3-letter fiat code prices are converted into.
            asset_ids: Non-empty, ordered canonical asset ids.

        Returns:
            A mapping with exactly the requested asset ids as keys.

        Raises:
            ValueError: If `asset_ids` is empty.
        """
        if not asset_ids:
            err_msg = "fetch_snapshot needs at least one asset id."
            raise ValueError(err_msg)

        symbols = [self.mapper.to_external(asset_id) for asset_id in asset_ids]
        params = {"fsyms": ",".join(symbols), "tsyms": currency}
        outcome = await self.fetcher.fetch(self.url, params=params)

        price_data: PriceData = dict.fromkeys(asset_ids)
        if not outcome.ok:
            logger.warning(
                f"Price request for {symbols} in {currency} failed: {outcome.reason}. "
                "Marking all assets unavailable."
            )
            return price_data

        raw = outcome.value.get("RAW") if isinstance(outcome.value, dict) else None
        if not isinstance(raw, dict):
            logger.warning(
                f"Price response for {symbols} has no 'RAW' section. "
                "Marking all assets unavailable."
            )
            return price_data

        for asset_id, symbol in zip(asset_ids, symbols, strict=True):
            price_data[asset_id] = self._parse_entry(raw, symbol, currency)
            if price_data[asset_id] is None:
                logger.debug(f"No {currency} price reported for {asset_id} ({symbol}).")

        available = sum(1 for snapshot in price_data.values() if snapshot)
        logger.success(
            f"Fetched prices for {available}/{len(price_data)} assets in {currency}."
        )
        return price_data

    @staticmethod
    def _parse_entry(
        raw: dict[str, Any], symbol: str, currency: str
    ) -> PriceSnapshot | None:
        by_currency = raw.get(symbol)
        if not isinstance(by_currency, dict):
            return None
        entry = by_currency.get(currency)
        if not isinstance(entry, dict):
            return None

        price = _as_number(entry.get("PRICE"))
        change_24h = _as_number(entry.get("CHANGEPCT24HOUR"))
        if price is None or change_24h is None:
            return None
        return PriceSnapshot(price=price, change_24h=change_24h)
