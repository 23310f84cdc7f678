import json
from types import ModuleType

import pytest

from exbridge.connectors.ccxt_connector.main import encode_reply, handle_request, resolve


def make_operations():
    module = ModuleType("fake_operations")

    async def fetch_ticker(opts):
        return {"symbol": opts["symbol"], "last": 1.0}

    async def fetch_l2_order_book(exchange, symbol, limit=None, params=None):
        return {"symbol": symbol, "limit": limit}

    async def explode():
        raise KeyError("missing")

    def helper():
        return "not exported"

    module.fetch_ticker = fetch_ticker
    module.fetch_l2_order_book = fetch_l2_order_book
    module.explode = explode
    module.helper = helper
    module.__all__ = ["fetch_ticker", "fetch_l2_order_book", "explode"]
    return module


def request(fn, args, request_id=1):
    return json.dumps({"id": request_id, "fn": fn, "args": args}).encode()


def test_resolve_converts_wire_names():
    ops = make_operations()
    assert resolve(ops, "fetchTicker") is ops.fetch_ticker
    assert resolve(ops, "fetchL2OrderBook") is ops.fetch_l2_order_book
    assert resolve(ops, "helper") is None
    assert resolve(ops, "fetchNothing") is None


@pytest.mark.asyncio
async def test_ok_reply():
    reply = await handle_request(make_operations(), request("fetchTicker", [{"symbol": "BTC/USDT"}], 9))
    assert reply == {"id": 9, "ok": {"symbol": "BTC/USDT", "last": 1.0}}


@pytest.mark.asyncio
async def test_positional_args_kept_in_order():
    reply = await handle_request(make_operations(), request("fetchL2OrderBook", ["kraken", "BTC/USD", 10, {}]))
    assert reply["ok"] == {"symbol": "BTC/USD", "limit": 10}


@pytest.mark.asyncio
async def test_exception_reply_names_its_type():
    reply = await handle_request(make_operations(), request("explode", []))
    assert reply == {"id": 1, "error": "'missing'", "type": "KeyError"}


@pytest.mark.asyncio
async def test_unknown_function_reply():
    reply = await handle_request(make_operations(), request("helper", []))
    assert reply["type"] == "UnknownFunction"
    assert reply["error"] == "unknown function: helper"


@pytest.mark.asyncio
async def test_malformed_requests():
    for line in (b"not json", b'{"id": 1}', b'{"id": 1, "fn": 3, "args": []}', b"[1, 2]"):
        reply = await handle_request(make_operations(), line)
        assert reply["type"] == "SerializationError", line


def test_encode_reply_falls_back_on_unencodable_value():
    line = encode_reply({"id": 4, "ok": {1, 2}})
    assert line.endswith(b"\n")
    assert json.loads(line) == {
        "id": 4,
        "error": "reply is not JSON encodable: Object of type set is not JSON serializable",
        "type": "SerializationError",
    }


def test_encode_reply_rejects_non_finite_floats():
    reply = json.loads(encode_reply({"id": 5, "ok": {"last": float("nan")}}))
    assert reply["id"] == 5
    assert reply["type"] == "SerializationError"
    assert "ok" not in reply
