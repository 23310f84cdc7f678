from types import SimpleNamespace

import pytest

from exbridge.connectors.ccxt_connector import operations
from exbridge.connectors.ccxt_connector.main import resolve

WIRE_NAMES = [
    "exchanges", "fetchStatus", "fetchTrades", "fetchOhlcvs", "fetchTicker", "fetchTickers",
    "fetchMarkets", "fetchOrderBook", "fetchCurrencies", "loadMarkets", "fetchL2OrderBook",
    "fetchOpenInterest", "fetchVolatilityHistory", "fetchUnderlyingAssets", "fetchSettlementHistory",
    "fetchLiquidations", "fetchGreeks", "fetchAllGreeks", "fetchOption", "fetchOptionChain",
    "fetchConvertQuote", "fetchFundingRate", "fetchFundingRates", "fetchFundingRateHistory",
    "fetchFundingRateInterval", "fetchFundingRateIntervals", "fetchLongShortRatio", "requiredCredentials",
    "fetchBalance", "createOrder", "createOrders", "createLimitBuyOrder", "createLimitSellOrder",
    "createMarketBuyOrder", "createMarketSellOrder", "cancelOrder", "fetchOrder", "fetchOrders",
    "fetchOpenOrders", "fetchCanceledOrders", "fetchClosedOrders", "fetchMyTrades", "fetchMyLiquidations",
    "fetchCrossBorrowRate", "fetchCrossBorrowRates", "fetchIsolatedBorrowRate", "fetchIsolatedBorrowRates",
    "createConvertTrade",
]


class BadSymbol(Exception):
    pass


class FakeExchange:
    """Records unified-method calls instead of talking to an exchange."""

    instances = []
    requiredCredentials = {"apiKey": True, "secret": True, "uid": False}

    def __init__(self, config):
        self.config = config
        self.closed = False
        self.calls = []
        FakeExchange.instances.append(self)

    async def close(self):
        self.closed = True

    def __getattr__(self, name):
        async def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            if args and args[0] == "BAD/PAIR":
                raise BadSymbol(f"{name}: bad symbol BAD/PAIR")
            return {"method": name}
        return method


@pytest.fixture
def fake_ccxt(monkeypatch):
    FakeExchange.instances = []
    module = SimpleNamespace(exchanges=["kraken", "binance"], kraken=FakeExchange, binance=FakeExchange)
    monkeypatch.setattr(operations, "ccxt", module)
    return module


def last_call():
    exchange = FakeExchange.instances[-1]
    return exchange.calls[-1]


def test_every_wire_name_resolves():
    for name in WIRE_NAMES:
        assert resolve(operations, name) is not None, name
    assert len(WIRE_NAMES) == len(operations.__all__)


def test_only_exported_names_resolve():
    assert resolve(operations, "newExchange") is None
    assert resolve(operations, "invoke") is None


@pytest.mark.asyncio
async def test_exchanges(fake_ccxt):
    assert await operations.exchanges() == ["kraken", "binance"]


@pytest.mark.asyncio
async def test_fetch_ticker_closes_exchange(fake_ccxt):
    assert await operations.fetch_ticker({"exchange": "kraken", "symbol": "BTC/USDT"}) == {"method": "fetch_ticker"}
    assert last_call() == ("fetch_ticker", ("BTC/USDT",), {})
    assert FakeExchange.instances[-1].closed
    assert FakeExchange.instances[-1].config == {}


@pytest.mark.asyncio
async def test_exchange_closed_on_error(fake_ccxt):
    with pytest.raises(BadSymbol):
        await operations.fetch_ticker({"exchange": "kraken", "symbol": "BAD/PAIR"})
    assert FakeExchange.instances[-1].closed


@pytest.mark.asyncio
async def test_unknown_exchange(fake_ccxt):
    with pytest.raises(operations.UnknownExchange, match="unknown exchange: nope"):
        await operations.fetch_markets("nope")


@pytest.mark.asyncio
async def test_fetch_ohlcvs_builds_symbol(fake_ccxt):
    await operations.fetch_ohlcvs({"exchange": "binance", "base": "BTC", "quote": "USDT", "since": 5, "limit": 2})
    assert last_call() == ("fetch_ohlcv", ("BTC/USDT", "1m", 5, 2), {"params": {}})


@pytest.mark.asyncio
async def test_fetch_trades_builds_symbol(fake_ccxt):
    await operations.fetch_trades({"exchange": "kraken", "base": "ETH", "quote": "EUR", "since": None, "limit": 10})
    assert last_call() == ("fetch_trades", ("ETH/EUR", None, 10), {})


@pytest.mark.asyncio
async def test_params_never_null(fake_ccxt):
    await operations.fetch_tickers("kraken", None, None)
    assert last_call() == ("fetch_tickers", (None,), {"params": {}})


@pytest.mark.asyncio
async def test_funding_interval_names(fake_ccxt):
    await operations.fetch_funding_rate_interval("binance", "BTC/USDT:USDT", {})
    assert last_call()[0] == "fetch_funding_interval"
    await operations.fetch_funding_rate_intervals("binance", None, {})
    assert last_call()[0] == "fetch_funding_intervals"


@pytest.mark.asyncio
async def test_private_call_uses_credentials(fake_ccxt):
    cred = {"apiKey": "k", "secret": "s"}
    await operations.create_limit_sell_order("binance", cred, "BTC/USDT", 0.5, 60000, {"timeInForce": "GTC"})
    exchange = FakeExchange.instances[-1]
    assert exchange.config == {"apiKey": "k", "secret": "s"}
    assert exchange.calls[-1] == ("create_limit_sell_order", ("BTC/USDT", 0.5, 60000), {"params": {"timeInForce": "GTC"}})
    assert exchange.closed


@pytest.mark.asyncio
async def test_required_credentials(fake_ccxt):
    assert await operations.required_credentials("kraken") == {"apiKey": True, "secret": True, "uid": False}
    assert FakeExchange.instances[-1].closed
