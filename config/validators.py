"""Configuration validators. Every failure raises ConfigurationError."""

from __future__ import annotations

import json
import re

from polycopy.exceptions import ConfigurationError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(address))


def parse_user_addresses(raw: str) -> list[str]:
    """Parse USER_ADDRESSES as a JSON array or a comma-separated list.

    Entries are trimmed and lower-cased; empty entries are dropped.
    """
    text = raw.strip()
    if text.startswith("[") and text.endswith("]"):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON format for USER_ADDRESSES: {exc}") from exc
        if not isinstance(decoded, list):
            raise ConfigurationError("USER_ADDRESSES JSON must be an array")
        items = [str(a) for a in decoded]
    else:
        items = text.split(",")

    addresses = [a.strip().lower() for a in items if a.strip()]
    for addr in addresses:
        if not is_valid_address(addr):
            raise ConfigurationError(
                f"Invalid address in USER_ADDRESSES: {addr} "
                "(expected 0x followed by 40 hex characters)"
            )
    return addresses


def validate_required(settings) -> None:
    """Raise ConfigurationError if any required value is missing."""
    missing = [
        name
        for name in ("USER_ADDRESSES", "PROXY_WALLET", "PRIVATE_KEY", "RPC_URL", "USDC_CONTRACT_ADDRESS")
        if not getattr(settings, name)
    ]
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


def validate_addresses(settings) -> None:
    if not is_valid_address(settings.PROXY_WALLET):
        raise ConfigurationError(f"Invalid PROXY_WALLET: {settings.PROXY_WALLET}")
    if not is_valid_address(settings.USDC_CONTRACT_ADDRESS):
        raise ConfigurationError(f"Invalid USDC_CONTRACT_ADDRESS: {settings.USDC_CONTRACT_ADDRESS}")
    if not parse_user_addresses(settings.USER_ADDRESSES):
        raise ConfigurationError("USER_ADDRESSES is empty")


def validate_numeric(settings) -> None:
    if settings.FETCH_INTERVAL <= 0:
        raise ConfigurationError(f"Invalid FETCH_INTERVAL: {settings.FETCH_INTERVAL}. Must be positive.")
    if settings.EXECUTOR_POLL_INTERVAL <= 0:
        raise ConfigurationError(
            f"Invalid EXECUTOR_POLL_INTERVAL: {settings.EXECUTOR_POLL_INTERVAL}. Must be positive."
        )
    if not 1 <= settings.RETRY_LIMIT <= 10:
        raise ConfigurationError(f"Invalid RETRY_LIMIT: {settings.RETRY_LIMIT}. Must be between 1 and 10.")
    if not 1 <= settings.NETWORK_RETRY_LIMIT <= 10:
        raise ConfigurationError(
            f"Invalid NETWORK_RETRY_LIMIT: {settings.NETWORK_RETRY_LIMIT}. Must be between 1 and 10."
        )
    if settings.TOO_OLD_TIMESTAMP < 1:
        raise ConfigurationError(
            f"Invalid TOO_OLD_TIMESTAMP: {settings.TOO_OLD_TIMESTAMP}. Must be a positive number of hours."
        )
    if settings.REQUEST_TIMEOUT_MS < 1000:
        raise ConfigurationError(
            f"Invalid REQUEST_TIMEOUT_MS: {settings.REQUEST_TIMEOUT_MS}. Must be at least 1000ms."
        )
    if not 0 < settings.BALANCE_SAFETY_BUFFER <= 1:
        raise ConfigurationError(
            f"Invalid BALANCE_SAFETY_BUFFER: {settings.BALANCE_SAFETY_BUFFER}. Must be in (0, 1]."
        )
    if settings.COPY_SIZE < 0 or settings.MIN_ORDER_SIZE_USD < 0 or settings.MAX_ORDER_SIZE_USD < 0:
        raise ConfigurationError("COPY_SIZE, MIN_ORDER_SIZE_USD and MAX_ORDER_SIZE_USD must be non-negative")
    if settings.MIN_ORDER_SIZE_USD > settings.MAX_ORDER_SIZE_USD:
        raise ConfigurationError("MIN_ORDER_SIZE_USD must not exceed MAX_ORDER_SIZE_USD")
    if settings.TRADE_AGGREGATION_WINDOW_SECONDS < 0:
        raise ConfigurationError("TRADE_AGGREGATION_WINDOW_SECONDS must be non-negative")


def validate_urls(settings) -> None:
    if not settings.CLOB_HTTP_URL.startswith("http"):
        raise ConfigurationError(f"Invalid CLOB_HTTP_URL: {settings.CLOB_HTTP_URL}. Must be an HTTP/HTTPS URL.")
    if not settings.RPC_URL.startswith("http"):
        raise ConfigurationError(f"Invalid RPC_URL: {settings.RPC_URL}. Must be an HTTP/HTTPS URL.")
    if not settings.DATA_API_URL.startswith("http"):
        raise ConfigurationError(f"Invalid DATA_API_URL: {settings.DATA_API_URL}. Must be an HTTP/HTTPS URL.")


def validate_settings(settings) -> None:
    """Run every check. Raises ConfigurationError on the first failure."""
    validate_required(settings)
    validate_addresses(settings)
    validate_numeric(settings)
    validate_urls(settings)
