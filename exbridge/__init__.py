"""Typed access to the ccxt exchange catalog through a supervised pool of worker processes."""

from exbridge.bridge import CallBridge
from exbridge.client import ExchangeClient
from exbridge.common_models import OHLCV, Credential, Currency, Market, OhlcvOpts, OrderBook, Ticker
from exbridge.config import BridgeConfig
from exbridge.errors import (
    BridgeError,
    CredentialError,
    DataQualityError,
    PoolStartupError,
    RemoteExecutionError,
    SchemaMismatchError,
    SerializationError,
    WorkerUnavailable,
)
from exbridge.pool import WorkerPool
from exbridge.result import Err, Ok, Result

__version__ = "0.1.0"

__all__ = [
    "BridgeConfig",
    "BridgeError",
    "CallBridge",
    "Credential",
    "CredentialError",
    "Currency",
    "DataQualityError",
    "Err",
    "ExchangeClient",
    "Market",
    "OHLCV",
    "OhlcvOpts",
    "Ok",
    "OrderBook",
    "PoolStartupError",
    "RemoteExecutionError",
    "Result",
    "SchemaMismatchError",
    "SerializationError",
    "Ticker",
    "WorkerPool",
    "WorkerUnavailable",
]
