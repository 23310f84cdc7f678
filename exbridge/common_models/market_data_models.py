from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional, Union

# --- Market Data Models (built from worker replies) ---
# Field sets follow the external library's unified structures, snake_cased.
# extra="forbid": an unknown key means the upstream schema drifted.

RECORD_CONFIG = ConfigDict(extra="forbid", frozen=True)


class Ticker(BaseModel):
    model_config = RECORD_CONFIG

    symbol: Optional[str] = None  # e.g., "BTC/USDT"
    info: Any = None  # raw exchange payload
    timestamp: Optional[int] = None  # ms
    datetime: Optional[str] = None  # ISO 8601
    high: Optional[float] = None
    low: Optional[float] = None
    bid: Optional[float] = None
    bid_volume: Optional[float] = None
    ask: Optional[float] = None
    ask_volume: Optional[float] = None
    vwap: Optional[float] = None
    open: Optional[float] = None
    close: Optional[float] = None
    last: Optional[float] = None
    previous_close: Optional[float] = None
    change: Optional[float] = None
    percentage: Optional[float] = None
    average: Optional[float] = None
    base_volume: Optional[float] = None
    quote_volume: Optional[float] = None
    index_price: Optional[float] = None
    mark_price: Optional[float] = None


class OrderBook(BaseModel):
    model_config = RECORD_CONFIG

    symbol: Optional[str] = None
    bids: List[List[float]] = []  # [price, amount], best (highest) first
    asks: List[List[float]] = []  # [price, amount], best (lowest) first
    timestamp: Optional[int] = None
    datetime: Optional[str] = None
    nonce: Optional[int] = None

    def sort_violation(self) -> Optional[str]:
        """Describe the first out-of-order level, or None if both sides are sorted."""
        for side, descending in (("bids", True), ("asks", False)):
            levels = getattr(self, side)
            for i in range(1, len(levels)):
                prev, cur = levels[i - 1][0], levels[i][0]
                if (cur > prev) if descending else (cur < prev):
                    order = "descending" if descending else "ascending"
                    return f"{side} not {order} at level {i}: {prev} then {cur}"
        return None


class Market(BaseModel):
    model_config = RECORD_CONFIG

    id: Optional[str] = None
    lowercase_id: Optional[str] = None
    symbol: Optional[str] = None
    base: Optional[str] = None
    quote: Optional[str] = None
    settle: Optional[str] = None
    base_id: Optional[str] = None
    quote_id: Optional[str] = None
    settle_id: Optional[str] = None
    type: Optional[str] = None  # spot, margin, swap, future, option
    spot: Optional[bool] = None
    margin: Optional[bool] = None
    swap: Optional[bool] = None
    future: Optional[bool] = None
    option: Optional[bool] = None
    index: Optional[bool] = None
    active: Optional[bool] = None
    contract: Optional[bool] = None
    linear: Optional[bool] = None
    inverse: Optional[bool] = None
    sub_type: Optional[str] = None
    taker: Optional[float] = None
    maker: Optional[float] = None
    contract_size: Optional[float] = None
    expiry: Optional[int] = None
    expiry_datetime: Optional[str] = None
    strike: Optional[float] = None
    option_type: Optional[str] = None
    precision: Optional[Dict[str, Any]] = None
    limits: Optional[Dict[str, Any]] = None
    margin_modes: Optional[Dict[str, Any]] = None
    created: Optional[int] = None
    info: Any = None
    tier_based: Optional[bool] = None
    percentage: Optional[bool] = None
    fee_side: Optional[str] = None
    fee_currency: Optional[str] = None


class Currency(BaseModel):
    model_config = RECORD_CONFIG

    id: Optional[str] = None
    numeric_id: Optional[Union[int, str]] = None
    code: Optional[str] = None
    name: Optional[str] = None
    active: Optional[bool] = None
    deposit: Optional[bool] = None
    withdraw: Optional[bool] = None
    payin: Optional[bool] = None
    payout: Optional[bool] = None
    transfer: Optional[bool] = None
    fee: Optional[float] = None
    fees: Optional[Dict[str, Any]] = None
    precision: Optional[float] = None
    limits: Optional[Dict[str, Any]] = None
    networks: Optional[Dict[str, Any]] = None
    type: Optional[str] = None  # e.g., "crypto", "fiat"
    margin: Optional[bool] = None
    info: Any = None


class OHLCV(BaseModel):
    model_config = RECORD_CONFIG

    timestamp: int  # period start, ms
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    base_volume: Optional[float] = None
