import pytest

from cryptoglance.symbols import (
    DEFAULT_SYMBOL_TABLE,
    SUPPORTED_ASSETS,
    SymbolMapper,
    currency_symbol,
)


@pytest.fixture()
def mapper() -> SymbolMapper:
    return SymbolMapper()


def test_forward_and_reverse_lookups(mapper: SymbolMapper) -> None:
    assert mapper.to_external("bitcoin") == "BTC"
    assert mapper.to_external("avalanche-2") == "AVAX"
    assert mapper.to_canonical("BTC") == "bitcoin"
    assert mapper.to_canonical("AVAX") == "avalanche-2"


def test_reverse_table_is_derived_from_forward_table(mapper: SymbolMapper) -> None:
    """Every forward entry must come back through the reverse table."""
    for canonical, external in DEFAULT_SYMBOL_TABLE.items():
        assert mapper.to_canonical(mapper.to_external(canonical)) == canonical
        assert mapper.to_external(mapper.to_canonical(external)) == external


def test_unknown_identifiers_pass_through(mapper: SymbolMapper) -> None:
    assert mapper.to_external("SOL") == "SOL"
    assert mapper.to_external("not-a-coin") == "not-a-coin"
    assert mapper.to_canonical("XYZ") == "XYZ"


def test_custom_table_overrides_default() -> None:
    mapper = SymbolMapper({"wrapped-bitcoin": "WBTC"})
    assert mapper.to_external("wrapped-bitcoin") == "WBTC"
    assert mapper.to_canonical("WBTC") == "wrapped-bitcoin"
    assert mapper.to_external("bitcoin") == "bitcoin"


def test_ambiguous_table_is_rejected() -> None:
    with pytest.raises(ValueError, match="BTC"):
        SymbolMapper({"bitcoin": "BTC", "btc": "BTC"})


def test_display_names(mapper: SymbolMapper) -> None:
    assert mapper.display_name("BTC") == "Bitcoin"
    assert mapper.display_name("ethereum") == "Ethereum"
    assert mapper.display_name("DOGE") == "DOGE"
    assert {asset.id for asset in SUPPORTED_ASSETS} == {
        "BTC",
        "ETH",
        "USDT",
        "BNB",
        "SOL",
    }


def test_currency_symbols() -> None:
    assert currency_symbol("USD") == "$"
    assert currency_symbol("EUR") == "€"
    assert currency_symbol("BDT") == "৳"
    assert currency_symbol("JPY") == "$"
