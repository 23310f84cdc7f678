"""Worker process: serves newline-delimited JSON calls against an operations module.

Started by :class:`exbridge.pool.WorkerPool` as
``python -m exbridge.connectors.ccxt_connector.main``.

Protocol (one request in flight at a time)::

    <- {"ready": true, "pid": 1234}                  once, after startup
    -> {"id": 1, "fn": "fetchTicker", "args": [...]}
    <- {"id": 1, "ok": <value>}
    <- {"id": 1, "error": "<message>", "type": "<exception class>"}
"""

import asyncio
import json
import logging
import os
import sys
from types import ModuleType
from typing import Any, BinaryIO, Callable, Dict, Optional

from exbridge.normalizer import snake_case

logger = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 64 * 1024 * 1024


def resolve(operations: ModuleType, fn: str) -> Optional[Callable]:
    """Wire name (``fetchTicker``) -> coroutine function of ``operations`` (``fetch_ticker``).

    Only names exported in ``operations.__all__`` are callable.
    """
    name = snake_case(fn)
    if name not in getattr(operations, "__all__", ()):
        return None
    operation = getattr(operations, name, None)
    return operation if callable(operation) else None


async def handle_request(operations: ModuleType, line: bytes) -> Dict[str, Any]:
    """Run one request line and build the reply object (not yet encoded)."""
    try:
        request = json.loads(line)
        request_id = request.get("id")
        fn = request["fn"]
        args = request.get("args") or []
        if not isinstance(fn, str) or not isinstance(args, list):
            raise TypeError("'fn' must be a string and 'args' a list")
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error(f"Malformed request: {e}")
        return {"id": None, "error": f"malformed request: {e}", "type": "SerializationError"}

    operation = resolve(operations, fn)
    if operation is None:
        return {"id": request_id, "error": f"unknown function: {fn}", "type": "UnknownFunction"}

    try:
        value = await operation(*args)
    except Exception as e:
        logger.error(f"Exception from {fn}: {type(e).__name__}: {e}")
        return {"id": request_id, "error": str(e), "type": type(e).__name__}
    logger.debug(f"Executed {fn} with {len(args)} args")
    return {"id": request_id, "ok": value}


def encode_reply(reply: Dict[str, Any]) -> bytes:
    try:
        return json.dumps(reply, allow_nan=False).encode("utf-8") + b"\n"
    except (TypeError, ValueError) as e:
        logger.error(f"Cannot encode reply for request {reply.get('id')}: {e}")
        fallback = {"id": reply.get("id"), "error": f"reply is not JSON encodable: {e}", "type": "SerializationError"}
        return json.dumps(fallback).encode("utf-8") + b"\n"


def write_message(out: BinaryIO, message: Dict[str, Any]) -> None:
    out.write(encode_reply(message))
    out.flush()


async def serve(operations: ModuleType, stdin, out: BinaryIO) -> None:
    """Announce readiness, then answer requests from ``stdin`` until EOF."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=MAX_REQUEST_BYTES)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), stdin)

    write_message(out, {"ready": True, "pid": os.getpid()})
    logger.info(f"Worker {os.getpid()} ready")

    while True:
        line = await reader.readline()
        if not line:
            logger.info(f"Worker {os.getpid()} stdin closed, exiting")
            break
        if not line.strip():
            continue
        reply = await handle_request(operations, line)
        write_message(out, reply)


def claim_stdout() -> BinaryIO:
    """Reserve the real stdout for the protocol; route everything else printed to stderr."""
    protocol_out = os.fdopen(os.dup(sys.stdout.fileno()), "wb")
    sys.stdout.flush()
    os.dup2(sys.stderr.fileno(), sys.stdout.fileno())
    sys.stdout = sys.stderr
    return protocol_out


def run(operations: ModuleType) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=os.getenv("EXBRIDGE_WORKER_LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - worker[%(process)d] - %(name)s - %(levelname)s - %(message)s',
    )
    out = claim_stdout()
    try:
        asyncio.run(serve(operations, sys.stdin, out))
    except KeyboardInterrupt:
        logger.warning("Keyboard interrupt detected, worker shutting down...")
    finally:
        out.close()


def main() -> None:
    """Entry point: load the ccxt catalog once, then serve."""
    from exbridge.connectors.ccxt_connector import operations

    run(operations)


if __name__ == "__main__":
    main()
