"""Catalog of operations a worker runs against ccxt.

Each function takes the wire arguments positionally, in the order the bridge
sends them. Every call gets a fresh exchange instance, which is always closed
before returning; private calls build theirs from the caller's secret payload
and nothing is kept between calls.
"""

import logging
from typing import Any, Dict, List, Optional

import ccxt.async_support as ccxt

logger = logging.getLogger(__name__)

__all__ = [
    # public
    "exchanges",
    "fetch_status",
    "fetch_trades",
    "fetch_ohlcvs",
    "fetch_ticker",
    "fetch_tickers",
    "fetch_markets",
    "fetch_order_book",
    "fetch_currencies",
    "load_markets",
    "fetch_l2_order_book",
    "fetch_open_interest",
    "fetch_volatility_history",
    "fetch_underlying_assets",
    "fetch_settlement_history",
    "fetch_liquidations",
    "fetch_greeks",
    "fetch_all_greeks",
    "fetch_option",
    "fetch_option_chain",
    "fetch_convert_quote",
    "fetch_funding_rate",
    "fetch_funding_rates",
    "fetch_funding_rate_history",
    "fetch_funding_rate_interval",
    "fetch_funding_rate_intervals",
    "fetch_long_short_ratio",
    "required_credentials",
    # private
    "fetch_balance",
    "create_order",
    "create_orders",
    "create_limit_buy_order",
    "create_limit_sell_order",
    "create_market_buy_order",
    "create_market_sell_order",
    "cancel_order",
    "fetch_order",
    "fetch_orders",
    "fetch_open_orders",
    "fetch_canceled_orders",
    "fetch_closed_orders",
    "fetch_my_trades",
    "fetch_my_liquidations",
    "fetch_cross_borrow_rate",
    "fetch_cross_borrow_rates",
    "fetch_isolated_borrow_rate",
    "fetch_isolated_borrow_rates",
    "create_convert_trade",
]


class UnknownExchange(Exception):
    """The exchange id is not one of ``ccxt.exchanges``."""


def new_exchange(exchange_id: str, credentials: Optional[Dict[str, str]] = None):
    if exchange_id not in ccxt.exchanges:
        raise UnknownExchange(f"unknown exchange: {exchange_id}")
    return getattr(ccxt, exchange_id)(dict(credentials or {}))


async def invoke(exchange_id: str, method: str, *args, credentials: Optional[Dict[str, str]] = None, **kwargs) -> Any:
    """Call ``method`` on a fresh exchange instance and close it afterwards."""
    exchange = new_exchange(exchange_id, credentials)
    try:
        return await getattr(exchange, method)(*args, **kwargs)
    finally:
        await exchange.close()


# -------------- PUBLIC -----------------

async def exchanges() -> List[str]:
    return list(ccxt.exchanges)


async def fetch_status(exchange: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_status", params=params or {})


async def fetch_trades(opts: Dict[str, Any]):
    symbol = f"{opts['base']}/{opts['quote']}"
    return await invoke(opts["exchange"], "fetch_trades", symbol, opts.get("since"), opts.get("limit"))


async def fetch_ohlcvs(opts: Dict[str, Any]):
    symbol = f"{opts['base']}/{opts['quote']}"
    return await invoke(
        opts["exchange"],
        "fetch_ohlcv",
        symbol,
        opts.get("timeframe") or "1m",
        opts.get("since"),
        opts.get("limit"),
        params=opts.get("params") or {},
    )


async def fetch_ticker(opts: Dict[str, Any]):
    return await invoke(opts["exchange"], "fetch_ticker", opts["symbol"])


async def fetch_tickers(exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_tickers", symbols, params=params or {})


async def fetch_markets(exchange: str):
    return await invoke(exchange, "fetch_markets")


async def fetch_order_book(opts: Dict[str, Any]):
    return await invoke(
        opts["exchange"], "fetch_order_book", opts["symbol"], opts.get("limit"), params=opts.get("params") or {}
    )


async def fetch_currencies(exchange: str):
    return await invoke(exchange, "fetch_currencies")


async def load_markets(exchange: str, reload: bool = False):
    return await invoke(exchange, "load_markets", reload)


async def fetch_l2_order_book(exchange: str, symbol: str, limit: Optional[int] = None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_l2_order_book", symbol, limit, params=params or {})


async def fetch_open_interest(exchange: str, symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_open_interest", symbol, params=params or {})


async def fetch_volatility_history(exchange: str, code: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_volatility_history", code, params=params or {})


async def fetch_underlying_assets(exchange: str):
    return await invoke(exchange, "fetch_underlying_assets")


async def fetch_settlement_history(exchange: str, symbol: str, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_settlement_history", symbol, since, limit, params=params or {})


async def fetch_liquidations(exchange: str, symbol: str, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_liquidations", symbol, since, limit, params=params or {})


async def fetch_greeks(exchange: str, symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_greeks", symbol, params=params or {})


async def fetch_all_greeks(exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_all_greeks", symbols, params=params or {})


async def fetch_option(exchange: str, symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_option", symbol, params=params or {})


async def fetch_option_chain(exchange: str, code: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_option_chain", code, params=params or {})


async def fetch_convert_quote(exchange: str, from_code: str, to_code: str, amount=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_convert_quote", from_code, to_code, amount, params=params or {})


async def fetch_funding_rate(exchange: str, symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_funding_rate", symbol, params=params or {})


async def fetch_funding_rates(exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_funding_rates", symbols, params=params or {})


async def fetch_funding_rate_history(exchange: str, symbol: str, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_funding_rate_history", symbol, since, limit, params=params or {})


# ccxt exposes these as fetch_funding_interval(s)
async def fetch_funding_rate_interval(exchange: str, symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_funding_interval", symbol, params=params or {})


async def fetch_funding_rate_intervals(exchange: str, symbols: Optional[List[str]] = None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_funding_intervals", symbols, params=params or {})


async def fetch_long_short_ratio(exchange: str, symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_long_short_ratio", symbol, params=params or {})


async def required_credentials(exchange: str) -> Dict[str, bool]:
    instance = new_exchange(exchange)
    try:
        return dict(instance.requiredCredentials)
    finally:
        await instance.close()


# -------------- PRIVATE -----------------

async def fetch_balance(exchange: str, cred: Dict[str, str], params: Optional[dict] = None):
    return await invoke(exchange, "fetch_balance", credentials=cred, params=params or {})


async def create_order(exchange: str, cred: Dict[str, str], symbol: str, type: str, side: str, amount, price=None, params: Optional[dict] = None):
    return await invoke(exchange, "create_order", symbol, type, side, amount, price, credentials=cred, params=params or {})


async def create_orders(exchange: str, cred: Dict[str, str], orders: List[dict], params: Optional[dict] = None):
    return await invoke(exchange, "create_orders", orders, credentials=cred, params=params or {})


async def create_limit_buy_order(exchange: str, cred: Dict[str, str], symbol: str, amount, price, params: Optional[dict] = None):
    return await invoke(exchange, "create_limit_buy_order", symbol, amount, price, credentials=cred, params=params or {})


async def create_limit_sell_order(exchange: str, cred: Dict[str, str], symbol: str, amount, price, params: Optional[dict] = None):
    return await invoke(exchange, "create_limit_sell_order", symbol, amount, price, credentials=cred, params=params or {})


async def create_market_buy_order(exchange: str, cred: Dict[str, str], symbol: str, amount, params: Optional[dict] = None):
    return await invoke(exchange, "create_market_buy_order", symbol, amount, credentials=cred, params=params or {})


async def create_market_sell_order(exchange: str, cred: Dict[str, str], symbol: str, amount, params: Optional[dict] = None):
    return await invoke(exchange, "create_market_sell_order", symbol, amount, credentials=cred, params=params or {})


async def cancel_order(exchange: str, cred: Dict[str, str], id: str, symbol: Optional[str] = None, params: Optional[dict] = None):
    return await invoke(exchange, "cancel_order", id, symbol, credentials=cred, params=params or {})


async def fetch_order(exchange: str, cred: Dict[str, str], id: str, symbol: Optional[str] = None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_order", id, symbol, credentials=cred, params=params or {})


async def fetch_orders(exchange: str, cred: Dict[str, str], symbol=None, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_orders", symbol, since, limit, credentials=cred, params=params or {})


async def fetch_open_orders(exchange: str, cred: Dict[str, str], symbol=None, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_open_orders", symbol, since, limit, credentials=cred, params=params or {})


async def fetch_canceled_orders(exchange: str, cred: Dict[str, str], symbol=None, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_canceled_orders", symbol, since, limit, credentials=cred, params=params or {})


async def fetch_closed_orders(exchange: str, cred: Dict[str, str], symbol=None, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_closed_orders", symbol, since, limit, credentials=cred, params=params or {})


async def fetch_my_trades(exchange: str, cred: Dict[str, str], symbol=None, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_my_trades", symbol, since, limit, credentials=cred, params=params or {})


async def fetch_my_liquidations(exchange: str, cred: Dict[str, str], symbol=None, since=None, limit=None, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_my_liquidations", symbol, since, limit, credentials=cred, params=params or {})


async def fetch_cross_borrow_rate(exchange: str, cred: Dict[str, str], code: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_cross_borrow_rate", code, credentials=cred, params=params or {})


async def fetch_cross_borrow_rates(exchange: str, cred: Dict[str, str], params: Optional[dict] = None):
    return await invoke(exchange, "fetch_cross_borrow_rates", credentials=cred, params=params or {})


async def fetch_isolated_borrow_rate(exchange: str, cred: Dict[str, str], symbol: str, params: Optional[dict] = None):
    return await invoke(exchange, "fetch_isolated_borrow_rate", symbol, credentials=cred, params=params or {})


async def fetch_isolated_borrow_rates(exchange: str, cred: Dict[str, str], params: Optional[dict] = None):
    return await invoke(exchange, "fetch_isolated_borrow_rates", credentials=cred, params=params or {})


async def create_convert_trade(exchange: str, cred: Dict[str, str], id: str, from_code: str, to_code: str, amount=None, params: Optional[dict] = None):
    return await invoke(exchange, "create_convert_trade", id, from_code, to_code, amount, credentials=cred, params=params or {})
