from .market_data_models import Ticker, OrderBook, Market, Currency, OHLCV
from .credential_models import Credential
from .request_models import OhlcvOpts

__all__ = ["Ticker", "OrderBook", "Market", "Currency", "OHLCV", "Credential", "OhlcvOpts"]
