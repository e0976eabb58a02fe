"""OrderSubmitter backed by py-clob-client.

py-clob-client is synchronous; every call runs in a worker thread.
Market orders are fill-or-kill: BUY amounts are USDC, SELL amounts are
tokens, matching what the venue expects for market orders.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, MarketOrderArgs, OrderType
from py_clob_client.exceptions import PolyApiException

from polycopy.exceptions import ExecutionError, InsufficientFundsError
from polycopy.execution.models import BUY, FillResult, OrderBook
from polycopy.utils.errors import extract_error_message, is_insufficient_funds_message

logger = structlog.get_logger()


def _levels(raw_levels: Any) -> list[tuple[float, float]]:
    levels = []
    for level in raw_levels or []:
        price = getattr(level, "price", None)
        size = getattr(level, "size", None)
        if isinstance(level, dict):
            price, size = level.get("price"), level.get("size")
        try:
            levels.append((float(price), float(size)))
        except (TypeError, ValueError):
            continue
    return levels


def _raise_for_error(message: Optional[str]) -> None:
    if is_insufficient_funds_message(message):
        raise InsufficientFundsError(message)
    raise ExecutionError(message or "unknown order error")


def parse_fill(response: Any, side: str, size: float) -> FillResult:
    """Turn a post_order response into a FillResult or raise.

    ``makingAmount`` is what we gave (USDC for BUY, tokens for SELL) and
    ``takingAmount`` is what we received.
    """
    if not isinstance(response, dict):
        raise ExecutionError(f"unexpected order response: {response!r}")
    if not response.get("success", False) or response.get("errorMsg"):
        _raise_for_error(extract_error_message(response) or "order rejected")

    try:
        making = float(response.get("makingAmount") or 0.0)
        taking = float(response.get("takingAmount") or 0.0)
    except (TypeError, ValueError):
        making = taking = 0.0

    filled = making if making > 0 else size
    if side == BUY:
        avg_price = making / taking if making and taking else 0.0
    else:
        avg_price = taking / making if making and taking else 0.0
    return FillResult(
        filled_amount=filled,
        avg_price=avg_price,
        order_id=str(response.get("orderID") or response.get("orderId") or ""),
    )


class ClobOrderSubmitter:
    """Executes market orders on Polymarket via the CLOB API."""

    def __init__(
        self,
        host: str,
        chain_id: int,
        private_key: str,
        funder: str,
        signature_type: int = 1,
        client: Optional[Any] = None,
    ) -> None:
        self._client = client or ClobClient(
            host=host,
            chain_id=chain_id,
            key=private_key,
            funder=funder,
            signature_type=signature_type,
        )
        self._creds_ready = client is not None

    @classmethod
    def from_settings(cls, settings) -> "ClobOrderSubmitter":
        return cls(
            host=settings.CLOB_HTTP_URL,
            chain_id=settings.CLOB_CHAIN_ID,
            private_key=settings.PRIVATE_KEY,
            funder=settings.PROXY_WALLET,
            signature_type=settings.CLOB_SIGNATURE_TYPE,
        )

    def _ensure_creds(self) -> None:
        if self._creds_ready:
            return
        creds: Optional[ApiCreds] = self._client.create_or_derive_api_creds()
        if not creds:
            raise ExecutionError("Failed to create or derive Polymarket API credentials")
        self._client.set_api_creds(creds)
        self._creds_ready = True

    def _get_order_book_sync(self, market: str) -> OrderBook:
        try:
            summary = self._client.get_order_book(market)
        except PolyApiException as exc:
            raise ExecutionError(f"order book for {market}: {extract_error_message(exc.error_msg) or exc}") from exc
        except Exception as exc:
            raise ExecutionError(f"order book for {market}: {exc}") from exc
        bids = getattr(summary, "bids", None)
        asks = getattr(summary, "asks", None)
        if isinstance(summary, dict):
            bids, asks = summary.get("bids"), summary.get("asks")
        return OrderBook(bids=_levels(bids), asks=_levels(asks))

    async def get_order_book(self, market: str) -> OrderBook:
        return await asyncio.to_thread(self._get_order_book_sync, market)

    def _submit_sync(self, market: str, side: str, size: float) -> FillResult:
        side = side.upper()
        try:
            self._ensure_creds()
            order = self._client.create_market_order(
                MarketOrderArgs(token_id=market, amount=size, side=side)
            )
            response = self._client.post_order(order, OrderType.FOK)
        except PolyApiException as exc:
            _raise_for_error(extract_error_message(exc.error_msg) or str(exc))
        except Exception as exc:
            message = str(exc)
            if is_insufficient_funds_message(message):
                raise InsufficientFundsError(message) from exc
            raise ExecutionError(message) from exc

        logger.info("clob_order_posted", market=market, side=side, size=size, response=response)
        return parse_fill(response, side, size)

    async def submit_market_order(self, market: str, side: str, size: float) -> FillResult:
        return await asyncio.to_thread(self._submit_sync, market, side, size)
