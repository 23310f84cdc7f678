from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Union
from datetime import datetime, timezone

# --- Request Models (consumed immediately by a facade call) ---


def to_unix_ms(value: Union[datetime, int, None]) -> Optional[int]:
    """Datetime (naive means UTC) or ms timestamp -> ms timestamp."""
    if value is None or isinstance(value, int):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class OhlcvOpts(BaseModel):
    """Options for :meth:`exbridge.client.ExchangeClient.fetch_ohlcvs`.

    ``OhlcvOpts(exchange="binance", base="BTC", quote="USDT", timeframe="1h", limit=100)``
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    exchange: str
    base: str
    quote: str
    timeframe: Optional[str] = None  # e.g., "1m", "1h", "1d"
    since: Optional[datetime] = None
    limit: Optional[int] = None
    params: Dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        payload = self.model_dump()
        payload["since"] = to_unix_ms(self.since)
        return payload
