"""Map raw worker replies onto the domain records.

Each mapper snake-cases the reply, checks its keys against the record's
fields and builds the record. Anything that does not fit raises
:class:`SchemaMismatchError` so upstream drift shows up immediately.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from exbridge.common_models import OHLCV, Currency, Market, OrderBook, Ticker
from exbridge.errors import DataQualityError, SchemaMismatchError
from exbridge.normalizer import to_field_keys, to_snake_case

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


def build_record(model: Type[R], raw: Any) -> R:
    """Normalize ``raw`` and construct ``model`` from it strictly."""
    data = to_field_keys(to_snake_case(raw), model.model_fields, model.__name__)
    try:
        return model(**data)
    except ValidationError as e:
        raise SchemaMismatchError(f"{model.__name__}: {e}") from e


def to_ticker(raw: Dict[str, Any]) -> Ticker:
    return build_record(Ticker, raw)


def to_tickers(raw: Dict[str, Any]) -> Dict[str, Ticker]:
    """``{symbol: raw_ticker}`` -> ``{symbol: Ticker}``; the symbols are kept as-is."""
    return {symbol: to_ticker(ticker) for symbol, ticker in _expect_dict(raw, "tickers").items()}


def to_order_book(raw: Dict[str, Any]) -> OrderBook:
    order_book = build_record(OrderBook, raw)
    violation = order_book.sort_violation()
    if violation:
        logger.warning(f"Order book for {order_book.symbol} out of order: {violation}")
        raise DataQualityError(f"OrderBook {order_book.symbol}: {violation}")
    return order_book


def to_market(raw: Dict[str, Any]) -> Market:
    return build_record(Market, raw)


def to_markets(raw: Any) -> List[Market]:
    """Accepts the list ``fetchMarkets`` returns or the ``{symbol: market}`` dict of ``loadMarkets``."""
    if isinstance(raw, dict):
        raw = list(raw.values())
    if not isinstance(raw, list):
        raise SchemaMismatchError(f"markets: expected a list, got {type(raw).__name__}")
    return [to_market(market) for market in raw]


def to_currency(raw: Dict[str, Any]) -> Currency:
    return build_record(Currency, raw)


def to_currencies(raw: Dict[str, Any]) -> Dict[str, Currency]:
    return {code: to_currency(currency) for code, currency in _expect_dict(raw, "currencies").items()}


def parse_float(term: Any) -> Optional[float]:
    if term is None:
        return None
    if isinstance(term, bool):
        raise SchemaMismatchError(f"expected a number, got {term!r}")
    try:
        return float(term)
    except (TypeError, ValueError) as e:
        raise SchemaMismatchError(f"expected a number, got {term!r}") from e


def to_ohlcvs(raw: List[List[Any]]) -> List[OHLCV]:
    """``[[ts, open, high, low, close, volume], ...]`` -> chronological list of :class:`OHLCV`."""
    if not isinstance(raw, list):
        raise SchemaMismatchError(f"OHLCV: expected a list, got {type(raw).__name__}")
    candles = []
    for row in raw:
        if not isinstance(row, list) or len(row) != 6:
            raise SchemaMismatchError(f"OHLCV: expected 6 columns, got {row!r}")
        timestamp, open_, high, low, close, volume = row
        try:
            candles.append(
                OHLCV(
                    timestamp=timestamp,
                    open=parse_float(open_),
                    high=parse_float(high),
                    low=parse_float(low),
                    close=parse_float(close),
                    base_volume=parse_float(volume),
                )
            )
        except ValidationError as e:
            raise SchemaMismatchError(f"OHLCV: {e}") from e
    return candles


def _expect_dict(raw: Any, what: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise SchemaMismatchError(f"{what}: expected an object, got {type(raw).__name__}")
    return raw
