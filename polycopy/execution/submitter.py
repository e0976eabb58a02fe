"""Capability interfaces the executor depends on."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from polycopy.execution.models import FillResult, OrderBook, Position


@runtime_checkable
class OrderSubmitter(Protocol):
    """Order book reads and market order submission.

    ``submit_market_order`` sizes BUY orders in USDC and SELL orders in
    tokens. It raises InsufficientFundsError when the venue reports missing
    balance or allowance, and ExecutionError/NetworkError otherwise.
    """

    async def get_order_book(self, market: str) -> OrderBook: ...

    async def submit_market_order(self, market: str, side: str, size: float) -> FillResult: ...


@runtime_checkable
class BalanceProvider(Protocol):
    async def get_available_balance(self, account: str) -> float: ...


@runtime_checkable
class PositionProvider(Protocol):
    async def get_positions(self, account: str) -> list[Position]: ...
