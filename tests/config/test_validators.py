import pytest

from config.settings import Settings
from config.validators import (
    is_valid_address,
    parse_user_addresses,
    validate_numeric,
    validate_required,
    validate_settings,
)
from polycopy.exceptions import ConfigurationError

A1 = "0x" + "a" * 40
A2 = "0x" + "B" * 40


def valid_settings(**kw) -> Settings:
    values = dict(
        USER_ADDRESSES=A1,
        PROXY_WALLET="0x" + "c" * 40,
        PRIVATE_KEY="0x" + "1" * 64,
        RPC_URL="https://polygon-rpc.com",
    )
    values.update(kw)
    return Settings(_env_file=None, **values)


def test_is_valid_address():
    assert is_valid_address(A1)
    assert not is_valid_address("0x123")
    assert not is_valid_address("a" * 42)


def test_parse_comma_separated_lowercases():
    assert parse_user_addresses(f" {A1} , {A2},") == [A1, A2.lower()]


def test_parse_json_array():
    assert parse_user_addresses(f'["{A1}", "{A2}"]') == [A1, A2.lower()]


def test_parse_rejects_bad_json():
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        parse_user_addresses("[not json]")


def test_parse_rejects_bad_address():
    with pytest.raises(ConfigurationError, match="Invalid address"):
        parse_user_addresses("0xdeadbeef")


def test_validate_settings_accepts_valid():
    validate_settings(valid_settings())


def test_missing_required_values_listed():
    with pytest.raises(ConfigurationError, match="PROXY_WALLET"):
        validate_required(valid_settings(PROXY_WALLET=""))


@pytest.mark.parametrize(
    "field,value",
    [
        ("RETRY_LIMIT", 0),
        ("RETRY_LIMIT", 11),
        ("FETCH_INTERVAL", 0),
        ("REQUEST_TIMEOUT_MS", 500),
        ("BALANCE_SAFETY_BUFFER", 1.5),
        ("MIN_ORDER_SIZE_USD", 500.0),
        ("TRADE_AGGREGATION_WINDOW_SECONDS", -1),
    ],
)
def test_validate_numeric_rejects(field, value):
    with pytest.raises(ConfigurationError):
        validate_numeric(valid_settings(**{field: value}))


def test_validate_urls_rejects_non_http_rpc():
    with pytest.raises(ConfigurationError, match="RPC_URL"):
        validate_settings(valid_settings(RPC_URL="polygon-rpc.com"))


def test_stale_websocket_url_in_env_is_ignored(monkeypatch):
    monkeypatch.setenv("CLOB_WS_URL", "not-a-url")
    settings = valid_settings()
    assert not hasattr(settings, "CLOB_WS_URL")
    validate_settings(settings)
