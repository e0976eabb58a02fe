"""Helpers for venue error payloads.

The CLOB returns errors in several shapes: a bare string, ``{"error": "..."}``,
a nested ``{"error": {"message": "..."}}``, or ``errorMsg`` / ``message`` keys.
"""

from __future__ import annotations

from typing import Any, Optional

_FUNDS_MARKERS = ("not enough balance", "insufficient balance", "insufficient funds", "allowance")


def extract_error_message(response: Any) -> Optional[str]:
    if not response:
        return None
    if isinstance(response, str):
        return response
    if isinstance(response, BaseException):
        return str(response)
    if not isinstance(response, dict):
        return None

    direct = response.get("error")
    if isinstance(direct, str):
        return direct
    if isinstance(direct, dict):
        for key in ("error", "message"):
            if isinstance(direct.get(key), str):
                return direct[key]

    for key in ("errorMsg", "errorMessage", "message"):
        if isinstance(response.get(key), str):
            return response[key]
    return None


def is_insufficient_funds_message(message: Optional[str]) -> bool:
    """True if the text reports missing balance or token allowance."""
    if not message:
        return False
    lower = message.lower()
    return any(marker in lower for marker in _FUNDS_MARKERS)


def short_address(address: str) -> str:
    """``0x1234...abcd`` form used in log lines."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
