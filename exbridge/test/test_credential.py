from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from exbridge.common_models import Credential, OhlcvOpts
from exbridge.common_models.request_models import to_unix_ms


def test_shape_omits_absent_fields_and_name():
    cred = Credential(name="binance", api_key="k", secret="s")
    assert cred.shape() == ("binance", {"apiKey": "k", "secret": "s"})


def test_shape_uses_wire_names():
    cred = Credential(name="hyperliquid", wallet_address="0xabc", private_key="pk", twofa="123")
    exchange, payload = cred.shape()
    assert exchange == "hyperliquid"
    assert payload == {"walletAddress": "0xabc", "privateKey": "pk", "twofa": "123"}


def test_wire_names_accepted_on_input():
    cred = Credential(name="binance", apiKey="k", secret="s")
    assert cred.api_key == "k"


def test_empty_string_is_absent():
    cred = Credential(name="kraken", api_key="k", password="")
    assert cred.password is None
    assert "password" not in cred.shape()[1]


def test_repr_hides_secrets():
    cred = Credential(name="binance", api_key="very-secret-key", secret="hush")
    text = repr(cred) + str(cred)
    assert "very-secret-key" not in text
    assert "hush" not in text
    assert "binance" in text


def test_presence_and_missing():
    cred = Credential(name="kucoin", api_key="k", secret="s")
    presence = cred.presence()
    assert presence["apiKey"] is True
    assert presence["password"] is False
    required = {"apiKey": True, "secret": True, "password": True, "uid": False}
    assert cred.missing(required) == ["password"]


def test_unknown_field_rejected():
    with pytest.raises(ValidationError):
        Credential(name="binance", passphrase="x")


def test_to_unix_ms():
    assert to_unix_ms(None) is None
    assert to_unix_ms(1700000000000) == 1700000000000
    assert to_unix_ms(datetime(2024, 1, 1)) == 1704067200000
    assert to_unix_ms(datetime(2024, 1, 1, 1, tzinfo=timezone(timedelta(hours=1)))) == 1704067200000


def test_ohlcv_opts_wire_shape():
    opts = OhlcvOpts(exchange="binance", base="BTC", quote="USDT", timeframe="1h", since=datetime(2024, 1, 1), limit=10)
    assert opts.to_wire() == {
        "exchange": "binance",
        "base": "BTC",
        "quote": "USDT",
        "timeframe": "1h",
        "since": 1704067200000,
        "limit": 10,
        "params": {},
    }


def test_account_id_credential():
    cred = Credential(name="bitmart", api_key="k", secret="s", account_id="acc-1")
    assert cred.shape()[1] == {"apiKey": "k", "secret": "s", "accountId": "acc-1"}
    assert cred.missing({"apiKey": True, "secret": True, "accountId": True}) == []
    assert Credential(name="bitmart", api_key="k").missing({"accountId": True}) == ["accountId"]
    assert "acc-1" not in repr(cred)
