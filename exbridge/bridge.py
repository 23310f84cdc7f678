"""Single entry point for invoking a named function in the worker pool."""

import json
import logging
import time
from typing import Any, List, Optional, Sequence

from exbridge.errors import (
    BridgeError,
    RemoteExecutionError,
    SerializationError,
    WorkerCrashed,
)
from exbridge.metrics import CALL_DURATION_SECONDS, CALLS_TOTAL
from exbridge.pool import Request, WorkerPool
from exbridge.result import Err, Ok, Result

logger = logging.getLogger(__name__)


def encode_args(args: Sequence[Any]) -> str:
    """JSON-encode positional arguments, preserving their order.

    :raises SerializationError: If any argument cannot be represented as JSON.
    """
    if isinstance(args, (str, bytes, dict)):
        raise SerializationError(f"arguments must be a list, got {type(args).__name__}")
    try:
        return json.dumps(list(args), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"arguments are not JSON encodable: {e}") from e


def decode_reply(fn: str, reply: dict) -> Result:
    """Turn a worker reply object into ``Ok(value)`` or ``Err(error)``."""
    if "ok" in reply:
        return Ok(reply["ok"])
    if "error" in reply:
        remote_type = reply.get("type")
        if remote_type == "SerializationError":
            return Err(SerializationError(str(reply["error"])))
        return Err(RemoteExecutionError(str(reply["error"]), remote_type=remote_type))
    return Err(SerializationError(f"reply to {fn} has neither 'ok' nor 'error'"))


class CallBridge:
    """Dispatches ``(function name, arguments)`` to the pool and tags the outcome.

    :param pool: A started :class:`~exbridge.pool.WorkerPool` (or any object with the same ``run``).
    :param timeout: Default per-call deadline; ``None`` uses the pool's own.
    """

    def __init__(self, pool: WorkerPool, timeout: Optional[float] = None):
        self.pool = pool
        self.timeout = timeout

    async def call(self, fn: str, args: List[Any], timeout: Optional[float] = None) -> Result:
        """Invoke ``fn`` with ``args`` in a worker.

        Never raises for worker-side failures: the error comes back inside ``Err``
        as a :class:`SerializationError`, :class:`WorkerUnavailable` or
        :class:`RemoteExecutionError`.
        """
        started = time.monotonic()
        try:
            request = Request(fn, encode_args(args))
        except SerializationError as e:
            logger.error(f"Cannot dispatch {fn}: {e.reason}")
            return self._record(fn, started, Err(e))

        try:
            reply = await self.pool.run(request, timeout=timeout if timeout is not None else self.timeout)
        except WorkerCrashed as e:
            result = Err(RemoteExecutionError(str(e), remote_type="WorkerCrashed"))
        except BridgeError as e:
            result = Err(e)
        else:
            result = decode_reply(fn, reply)

        if not result.ok:
            logger.warning(f"{fn} failed: {type(result.error).__name__}: {result.reason}")
        return self._record(fn, started, result)

    @staticmethod
    def _record(fn: str, started: float, result: Result) -> Result:
        outcome = "ok" if result.ok else type(result.error).__name__
        CALLS_TOTAL.labels(function=fn, outcome=outcome).inc()
        CALL_DURATION_SECONDS.labels(function=fn).observe(time.monotonic() - started)
        return result
