"""Typed facade over the call bridge.

Every method is a coroutine returning :class:`~exbridge.result.Ok` or
:class:`~exbridge.result.Err`; nothing here raises for exchange or worker
failures. Usage::

    async with WorkerPool.from_config(BridgeConfig.from_env()) as pool:
        client = ExchangeClient(CallBridge(pool))
        result = await client.fetch_ticker("kraken", "BTC", "USDT")
        if result.ok:
            print(result.value.last)
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from exbridge import mappers
from exbridge.bridge import CallBridge
from exbridge.common_models import Credential, OhlcvOpts
from exbridge.common_models.request_models import to_unix_ms
from exbridge.errors import CredentialError, RemoteExecutionError
from exbridge.result import Err, Ok, Result

logger = logging.getLogger(__name__)

TICKERS_NOT_SUPPORTED = "fetchTickers not supported"

Since = Union[datetime, int, None]


class ExchangeClient:
    """One method per exchange operation.

    Public methods take the exchange id first. Private methods take a
    :class:`Credential` first; it is shaped into ``(exchange_id, payload)`` for
    every call and never kept.
    """

    def __init__(self, bridge: CallBridge):
        self.bridge = bridge

    async def _call(self, fn: str, args: List[Any], mapper: Optional[Callable] = None) -> Result:
        result = await self.bridge.call(fn, args)
        return result.map(mapper) if mapper else result

    async def _private(self, fn: str, credential: Credential, *args) -> Result:
        exchange_id, payload = credential.shape()
        logger.debug(f"{fn} on {exchange_id} with credentials {credential.presence()}")
        return await self._call(fn, [exchange_id, payload, *args])

    # -------------- PUBLIC -----------------

    async def exchanges(self) -> Result:
        return await self._call("exchanges", [])

    async def fetch_ticker(self, exchange: str, base: str, quote: str) -> Result:
        """:return: ``Ok(Ticker)`` for ``BASE/QUOTE`` on ``exchange``."""
        return await self._call(
            "fetchTicker", [{"exchange": exchange, "symbol": f"{base}/{quote}"}], mappers.to_ticker
        )

    async def fetch_tickers(
        self, exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None
    ) -> Result:
        """:return: ``Ok({symbol: Ticker})``.

        Exchanges without a bulk ticker endpoint yield
        ``Err(RemoteExecutionError("fetchTickers not supported"))``.
        """
        result = await self._call("fetchTickers", [exchange, symbols, params or {}], mappers.to_tickers)
        if not result.ok and TICKERS_NOT_SUPPORTED in result.reason:
            return Err(RemoteExecutionError(TICKERS_NOT_SUPPORTED))
        return result

    async def fetch_markets(self, exchange: str) -> Result:
        return await self._call("fetchMarkets", [exchange], mappers.to_markets)

    async def fetch_currencies(self, exchange: str) -> Result:
        return await self._call("fetchCurrencies", [exchange], mappers.to_currencies)

    async def load_markets(self, exchange: str, reload: bool = False) -> Result:
        return await self._call("loadMarkets", [exchange, reload])

    async def fetch_status(self, exchange: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchStatus", [exchange, params or {}])

    async def fetch_order_book(
        self, exchange: str, symbol: str, limit: Optional[int] = None, params: Optional[dict] = None
    ) -> Result:
        """:return: ``Ok(OrderBook)``, or ``Err(DataQualityError)`` if a side is out of order."""
        opts = {"exchange": exchange, "symbol": symbol, "limit": limit, "params": params or {}}
        return await self._call("fetchOrderBook", [opts], mappers.to_order_book)

    async def fetch_l2_order_book(
        self, exchange: str, symbol: str, limit: Optional[int] = None, params: Optional[dict] = None
    ) -> Result:
        return await self._call("fetchL2OrderBook", [exchange, symbol, limit, params or {}], mappers.to_order_book)

    async def fetch_ohlcvs(self, opts: OhlcvOpts) -> Result:
        """:return: ``Ok([OHLCV])`` in chronological order."""
        return await self._call("fetchOhlcvs", [opts.to_wire()], mappers.to_ohlcvs)

    async def fetch_trades(
        self, exchange: str, base: str, quote: str, since: Since = None, limit: Optional[int] = None
    ) -> Result:
        opts = {"exchange": exchange, "base": base, "quote": quote, "since": to_unix_ms(since), "limit": limit}
        return await self._call("fetchTrades", [opts])

    async def fetch_open_interest(self, exchange: str, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchOpenInterest", [exchange, symbol, params or {}])

    async def fetch_volatility_history(self, exchange: str, code: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchVolatilityHistory", [exchange, code, params or {}])

    async def fetch_underlying_assets(self, exchange: str) -> Result:
        return await self._call("fetchUnderlyingAssets", [exchange])

    async def fetch_settlement_history(
        self, exchange: str, symbol: str, since: Since = None, limit: Optional[int] = None,
        params: Optional[dict] = None,
    ) -> Result:
        return await self._call("fetchSettlementHistory", [exchange, symbol, to_unix_ms(since), limit, params or {}])

    async def fetch_liquidations(
        self, exchange: str, symbol: str, since: Since = None, limit: Optional[int] = None,
        params: Optional[dict] = None,
    ) -> Result:
        return await self._call("fetchLiquidations", [exchange, symbol, to_unix_ms(since), limit, params or {}])

    async def fetch_greeks(self, exchange: str, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchGreeks", [exchange, symbol, params or {}])

    async def fetch_all_greeks(
        self, exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None
    ) -> Result:
        return await self._call("fetchAllGreeks", [exchange, symbols, params or {}])

    async def fetch_option(self, exchange: str, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchOption", [exchange, symbol, params or {}])

    async def fetch_option_chain(self, exchange: str, code: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchOptionChain", [exchange, code, params or {}])

    async def fetch_convert_quote(
        self, exchange: str, from_code: str, to_code: str, amount: Optional[float] = None,
        params: Optional[dict] = None,
    ) -> Result:
        return await self._call("fetchConvertQuote", [exchange, from_code, to_code, amount, params or {}])

    async def fetch_funding_rate(self, exchange: str, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchFundingRate", [exchange, symbol, params or {}])

    async def fetch_funding_rates(
        self, exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None
    ) -> Result:
        return await self._call("fetchFundingRates", [exchange, symbols, params or {}])

    async def fetch_funding_rate_history(
        self, exchange: str, symbol: str, since: Since = None, limit: Optional[int] = None,
        params: Optional[dict] = None,
    ) -> Result:
        return await self._call("fetchFundingRateHistory", [exchange, symbol, to_unix_ms(since), limit, params or {}])

    async def fetch_funding_rate_interval(self, exchange: str, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchFundingRateInterval", [exchange, symbol, params or {}])

    async def fetch_funding_rate_intervals(
        self, exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None
    ) -> Result:
        return await self._call("fetchFundingRateIntervals", [exchange, symbols, params or {}])

    async def fetch_long_short_ratio(self, exchange: str, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._call("fetchLongShortRatio", [exchange, symbol, params or {}])

    async def required_credentials(self, exchange: str) -> Result:
        """:return: ``Ok({"apiKey": True, "secret": True, "uid": False, ...})``."""
        return await self._call("requiredCredentials", [exchange])

    async def new_credential(self, name: Optional[str] = None, **fields) -> Result:
        """Build a :class:`Credential` and check it against what ``name`` requires.

        Only the requirement lookup is dispatched; no private call is made.

        :param name: Exchange id.
        :param fields: ``api_key``, ``secret``, ``password``, ``uid``, ... (snake_case or wire names).
        :return: ``Ok(Credential)`` or ``Err(CredentialError)``.
        """
        if not name:
            return Err(CredentialError("name is required"))
        try:
            credential = Credential(name=name, **fields)
        except ValidationError as e:
            return Err(CredentialError(f"invalid credential fields: {e}"))

        requirements = await self.required_credentials(name)
        if not requirements.ok or not isinstance(requirements.value, dict):
            logger.error(f"Cannot obtain required credentials for {name}")
            return Err(CredentialError("cannot obtain required credentials information"))

        missing = credential.missing(requirements.value)
        if missing:
            logger.info(f"Credential for {name} is incomplete: {credential.presence()}")
            return Err(CredentialError(f"missing credential: {', '.join(missing)}"))
        return Ok(credential)

    # -------------- PRIVATE -----------------

    async def fetch_balance(self, credential: Credential, params: Optional[dict] = None) -> Result:
        return await self._private("fetchBalance", credential, params or {})

    async def create_order(
        self, credential: Credential, symbol: str, type: str, side: str, amount: float,
        price: Optional[float] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("createOrder", credential, symbol, type, side, amount, price, params or {})

    async def create_orders(self, credential: Credential, orders: List[Dict[str, Any]], params: Optional[dict] = None) -> Result:
        return await self._private("createOrders", credential, orders, params or {})

    async def create_limit_buy_order(
        self, credential: Credential, symbol: str, amount: float, price: float, params: Optional[dict] = None
    ) -> Result:
        return await self._private("createLimitBuyOrder", credential, symbol, amount, price, params or {})

    async def create_limit_sell_order(
        self, credential: Credential, symbol: str, amount: float, price: float, params: Optional[dict] = None
    ) -> Result:
        return await self._private("createLimitSellOrder", credential, symbol, amount, price, params or {})

    async def create_market_buy_order(
        self, credential: Credential, symbol: str, amount: float, params: Optional[dict] = None
    ) -> Result:
        return await self._private("createMarketBuyOrder", credential, symbol, amount, params or {})

    async def create_market_sell_order(
        self, credential: Credential, symbol: str, amount: float, params: Optional[dict] = None
    ) -> Result:
        return await self._private("createMarketSellOrder", credential, symbol, amount, params or {})

    async def cancel_order(
        self, credential: Credential, id: str, symbol: Optional[str] = None, params: Optional[dict] = None
    ) -> Result:
        return await self._private("cancelOrder", credential, id, symbol, params or {})

    async def fetch_order(
        self, credential: Credential, id: str, symbol: Optional[str] = None, params: Optional[dict] = None
    ) -> Result:
        return await self._private("fetchOrder", credential, id, symbol, params or {})

    async def fetch_orders(
        self, credential: Credential, symbol: Optional[str] = None, since: Since = None,
        limit: Optional[int] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("fetchOrders", credential, symbol, to_unix_ms(since), limit, params or {})

    async def fetch_open_orders(
        self, credential: Credential, symbol: Optional[str] = None, since: Since = None,
        limit: Optional[int] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("fetchOpenOrders", credential, symbol, to_unix_ms(since), limit, params or {})

    async def fetch_canceled_orders(
        self, credential: Credential, symbol: Optional[str] = None, since: Since = None,
        limit: Optional[int] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("fetchCanceledOrders", credential, symbol, to_unix_ms(since), limit, params or {})

    async def fetch_closed_orders(
        self, credential: Credential, symbol: Optional[str] = None, since: Since = None,
        limit: Optional[int] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("fetchClosedOrders", credential, symbol, to_unix_ms(since), limit, params or {})

    async def fetch_my_trades(
        self, credential: Credential, symbol: Optional[str] = None, since: Since = None,
        limit: Optional[int] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("fetchMyTrades", credential, symbol, to_unix_ms(since), limit, params or {})

    async def fetch_my_liquidations(
        self, credential: Credential, symbol: Optional[str] = None, since: Since = None,
        limit: Optional[int] = None, params: Optional[dict] = None,
    ) -> Result:
        return await self._private("fetchMyLiquidations", credential, symbol, to_unix_ms(since), limit, params or {})

    async def fetch_cross_borrow_rate(self, credential: Credential, code: str, params: Optional[dict] = None) -> Result:
        return await self._private("fetchCrossBorrowRate", credential, code, params or {})

    async def fetch_cross_borrow_rates(self, credential: Credential, params: Optional[dict] = None) -> Result:
        return await self._private("fetchCrossBorrowRates", credential, params or {})

    async def fetch_isolated_borrow_rate(self, credential: Credential, symbol: str, params: Optional[dict] = None) -> Result:
        return await self._private("fetchIsolatedBorrowRate", credential, symbol, params or {})

    async def fetch_isolated_borrow_rates(self, credential: Credential, params: Optional[dict] = None) -> Result:
        return await self._private("fetchIsolatedBorrowRates", credential, params or {})

    async def create_convert_trade(
        self, credential: Credential, id: str, from_code: str, to_code: str, amount: Optional[float] = None,
        params: Optional[dict] = None,
    ) -> Result:
        return await self._private("createConvertTrade", credential, id, from_code, to_code, amount, params or {})
