import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from exbridge.bridge import CallBridge
from exbridge.client import ExchangeClient
from exbridge.common_models import OhlcvOpts
from exbridge.config import BridgeConfig
from exbridge.errors import ConfigurationError, PoolStartupError
from exbridge.logging_setup import setup_logging
from exbridge.pool import WorkerPool
from exbridge.result import Result

"""Driver module"""

logger = logging.getLogger(__name__)


def init_argparse(argv=None) -> argparse.Namespace:
    """Fetch the command line arguments and configure logging from them"""
    parser = argparse.ArgumentParser(prog="exbridge", description="Exchange data through a pool of ccxt workers")
    parser.add_argument('-d', '--debug', action='store_true', help='set the logging level to logging.DEBUG')
    parser.add_argument('--log-config', help='YAML logging config (defaults to the packaged one)')
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("exchanges", help="list exchange ids")

    ticker = sub.add_parser("ticker", help="fetch one ticker")
    ticker.add_argument("exchange")
    ticker.add_argument("base")
    ticker.add_argument("quote")

    orderbook = sub.add_parser("orderbook", help="fetch an order book")
    orderbook.add_argument("exchange")
    orderbook.add_argument("symbol")
    orderbook.add_argument("--limit", type=int)

    ohlcv = sub.add_parser("ohlcv", help="fetch candles")
    ohlcv.add_argument("exchange")
    ohlcv.add_argument("base")
    ohlcv.add_argument("quote")
    ohlcv.add_argument("--timeframe", default="1h")
    ohlcv.add_argument("--limit", type=int)

    markets = sub.add_parser("markets", help="fetch all markets of an exchange")
    markets.add_argument("exchange")

    sub.add_parser("serve", help="run the worker pool with /health and /metrics")

    args = parser.parse_args(argv)
    setup_logging(debug=args.debug, config_path=args.log_config)
    return args


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def print_result(result: Result) -> int:
    if result.ok:
        json.dump(to_jsonable(result.value), sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0
    json.dump({"error": type(result.error).__name__, "reason": result.reason}, sys.stderr)
    sys.stderr.write("\n")
    return 1


async def run_command(args: argparse.Namespace, config: BridgeConfig) -> int:
    """Run a single facade call on a one-worker pool and print the outcome."""
    async with WorkerPool.from_config(config, size=1) as pool:
        client = ExchangeClient(CallBridge(pool))
        if args.command == "exchanges":
            result = await client.exchanges()
        elif args.command == "ticker":
            result = await client.fetch_ticker(args.exchange, args.base, args.quote)
        elif args.command == "orderbook":
            result = await client.fetch_order_book(args.exchange, args.symbol, limit=args.limit)
        elif args.command == "ohlcv":
            opts = OhlcvOpts(
                exchange=args.exchange, base=args.base, quote=args.quote,
                timeframe=args.timeframe, limit=args.limit,
            )
            result = await client.fetch_ohlcvs(opts)
        else:
            result = await client.fetch_markets(args.exchange)
    return print_result(result)


def make_health_app(pool: WorkerPool) -> web.Application:
    async def health_check_handler(request):
        status = pool.status()
        healthy = not status["closed"] and status["fatal_error"] is None
        status["status"] = "healthy" if healthy else "unhealthy"
        return web.json_response(status, status=200 if healthy else 503)

    async def metrics_handler(request):
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})

    app = web.Application()
    app.router.add_get("/health", health_check_handler)
    app.router.add_get("/metrics", metrics_handler)
    return app


async def start_health_check_server(pool: WorkerPool, port: int = 5000) -> web.AppRunner:
    runner = web.AppRunner(make_health_app(pool))
    await runner.setup()
    site = web.TCPSite(runner, '0.0.0.0', port)
    await site.start()
    logger.info(f"Health check server started on port {port}")
    return runner


def register_signals(stop: asyncio.Event) -> None:
    """Register signal handlers for graceful shutdown."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGHUP, signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: _on_signal(s, stop))


def _on_signal(sig: signal.Signals, stop: asyncio.Event) -> None:
    logger.info(f"Received exit signal {sig.name}...")
    stop.set()


async def serve(config: BridgeConfig) -> int:
    """Keep the pool up until a signal arrives or the pool fails."""
    stop = asyncio.Event()
    register_signals(stop)
    pool = WorkerPool.from_config(config)
    await pool.start()
    health_runner: Optional[web.AppRunner] = None
    try:
        health_runner = await start_health_check_server(pool, config.health_port)
        stop_task = asyncio.ensure_future(stop.wait())
        fatal_task = asyncio.ensure_future(pool.wait_fatal())
        done, pending = await asyncio.wait({stop_task, fatal_task}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if fatal_task in done:
            logger.critical(f"Worker pool failed: {fatal_task.result().reason}")
            return 1
        return 0
    finally:
        logger.info("Shutdown initiated...")
        if health_runner:
            logger.info("Stopping health check server...")
            await health_runner.cleanup()
        await pool.close()
        logger.info("Shutdown complete.")


def main(argv=None) -> int:
    """Main function that runs the application."""
    args = init_argparse(argv)
    try:
        config = BridgeConfig.from_env()
    except ConfigurationError as e:
        logger.error(str(e))
        return 2
    try:
        if args.command == "serve":
            return asyncio.run(serve(config))
        return asyncio.run(run_command(args, config))
    except PoolStartupError as e:
        logger.critical(f"Could not start workers: {e.reason}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Keyboard interrupt detected, shutting down...")
        return 130


if __name__ == '__main__':
    sys.exit(main())
