"""Copy-order execution with bounded retries and exactly-once marking.

``TradeExecutor.execute`` takes a single pending trade or a flushed
aggregation and walks it through

    decided -> attempting -> succeeded | aborted (funds) | retries exhausted
    decided -> skipped (zero amount, nothing to unwind)

then writes the outcome onto every originating record. The write happens
after the outcome is known and at most once per (trader, transaction hash).
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Union

import structlog

from polycopy.exceptions import DatabaseError, InsufficientFundsError
from polycopy.execution.models import (
    BUY,
    SELL,
    AggregatedTrade,
    ExecutionOutcome,
    ExecutionResult,
    PendingTrade,
    Position,
    RecordKey,
    TradeCondition,
)
from polycopy.execution.submitter import BalanceProvider, OrderSubmitter, PositionProvider
from polycopy.strategy.sizing import CopyStrategyConfig, compute_order_size

if TYPE_CHECKING:
    from polycopy.db.activities import ActivityStore

logger = structlog.get_logger()

DEFAULT_RETRY_LIMIT = 3
# Remaining amounts below this count as fully filled.
DUST = 0.01

Executable = Union[PendingTrade, AggregatedTrade]


def derive_condition(trade: PendingTrade, my_position: Optional[Position]) -> TradeCondition:
    if trade.side == BUY:
        return TradeCondition.BUY
    if my_position is not None:
        return TradeCondition.MERGE
    return TradeCondition.SELL


class TradeExecutor:
    def __init__(
        self,
        *,
        store: "ActivityStore",
        submitter: OrderSubmitter,
        balances: BalanceProvider,
        positions: PositionProvider,
        strategy: CopyStrategyConfig,
        proxy_wallet: str,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        min_order_tokens: float = 1.0,
    ) -> None:
        self.store = store
        self.submitter = submitter
        self.balances = balances
        self.positions = positions
        self.strategy = strategy
        self.proxy_wallet = proxy_wallet
        self.retry_limit = retry_limit
        self.min_order_tokens = min_order_tokens
        # Outcomes whose mark write failed; re-marked instead of re-executed.
        self._unmarked: dict[RecordKey, ExecutionResult] = {}

    # ── Public API ──────────────────────────────────────────────────

    async def execute(self, item: Executable) -> ExecutionResult:
        """Execute a trade or batch and mark its records.

        Capability lookups that fail before any order is sent propagate and
        leave the records unmarked so the next tick picks them up again.
        Once the attempt loop starts, every failure consumes an attempt and the
        records always end up marked.
        """
        if isinstance(item, AggregatedTrade):
            trades = list(item.trades)
            trade = item.as_trade()
            logger.info(
                "aggregated_trade_execute",
                trades=len(trades),
                market=item.market_name,
                side=item.key.side,
                total=round(item.total_usdc_size, 2),
                average_price=round(item.average_price, 4),
            )
        else:
            trades = [item]
            trade = item

        result = await self._run(trade)
        await self.mark(trades, result)
        return result

    async def skip(self, trades: list[PendingTrade], reason: str) -> ExecutionResult:
        """Mark trades SKIPPED without submitting anything."""
        result = ExecutionResult(outcome=ExecutionOutcome.SKIPPED, reason=reason)
        await self.mark(trades, result)
        return result

    async def mark(self, trades: list[PendingTrade], result: ExecutionResult) -> list[RecordKey]:
        """Persist ``result`` on each trade. Returns the record keys whose write failed."""
        total = sum(t.usdc_size for t in trades) or 1.0
        failed: list[RecordKey] = []
        for t in trades:
            per_trade = result
            if len(trades) > 1 and result.tokens_bought:
                per_trade = replace(result, tokens_bought=result.tokens_bought * t.usdc_size / total)
            if not await self._mark_one(t.record_key, per_trade):
                failed.append(t.record_key)
        return failed

    def is_unmarked(self, record_key: RecordKey) -> bool:
        return record_key in self._unmarked

    @property
    def unmarked_count(self) -> int:
        return len(self._unmarked)

    async def retry_unmarked(self) -> int:
        """Retry marks that failed earlier. Returns how many are still pending."""
        for key, result in list(self._unmarked.items()):
            self._unmarked.pop(key)
            await self._mark_one(key, result)
        return len(self._unmarked)

    # ── Decision ────────────────────────────────────────────────────

    async def _run(self, trade: PendingTrade) -> ExecutionResult:
        my_positions = await self.positions.get_positions(self.proxy_wallet)
        my_position = next(
            (p for p in my_positions if p.condition_id == trade.condition_id), None
        )
        condition = derive_condition(trade, my_position)
        logger.info(
            "copy_trade_start",
            trader=trade.trader_address,
            tx=trade.transaction_hash,
            market=trade.market_name,
            side=trade.side,
            usdc_size=round(trade.usdc_size, 2),
            price=trade.price,
            condition=condition.value,
        )

        if condition is TradeCondition.BUY:
            return await self._buy(trade, my_position)
        return await self._unwind(trade, my_position, condition)

    async def _buy(self, trade: PendingTrade, my_position: Optional[Position]) -> ExecutionResult:
        balance = await self.balances.get_available_balance(self.proxy_wallet)
        exposure = my_position.cost_basis if my_position else 0.0
        decision = compute_order_size(trade.usdc_size, balance, exposure, self.strategy)
        logger.info(
            "copy_size_decision",
            balance=round(balance, 2),
            trader_size=round(trade.usdc_size, 2),
            final_amount=round(decision.final_amount, 2),
            reasoning=decision.reasoning,
        )

        if not decision.should_execute:
            logger.warning(
                "copy_skipped",
                tx=trade.transaction_hash,
                reason=decision.reasoning,
                hint="increase COPY_SIZE or wait for larger trades" if decision.below_minimum else None,
            )
            return ExecutionResult(
                outcome=ExecutionOutcome.SKIPPED,
                condition=TradeCondition.BUY,
                decision=decision,
                reason=decision.reasoning,
            )

        result = await self._submit(trade.asset, BUY, decision.final_amount)
        result.condition = TradeCondition.BUY
        result.decision = decision
        return result

    async def _unwind(
        self,
        trade: PendingTrade,
        my_position: Optional[Position],
        condition: TradeCondition,
    ) -> ExecutionResult:
        if my_position is None or my_position.size <= 0:
            reason = "no position to sell"
            logger.warning("copy_skipped", tx=trade.transaction_hash, condition=condition.value, reason=reason)
            return ExecutionResult(outcome=ExecutionOutcome.SKIPPED, condition=condition, reason=reason)

        if my_position.size < self.min_order_tokens:
            reason = (
                f"position size ({my_position.size:.2f} tokens) below minimum "
                f"{self.min_order_tokens:.2f} tokens"
            )
            logger.warning("copy_skipped", tx=trade.transaction_hash, condition=condition.value, reason=reason)
            return ExecutionResult(outcome=ExecutionOutcome.SKIPPED, condition=condition, reason=reason)

        result = await self._submit(my_position.asset or trade.asset, SELL, my_position.size)
        result.condition = condition
        return result

    # ── Attempt loop ────────────────────────────────────────────────

    async def _submit(self, market: str, side: str, amount: float) -> ExecutionResult:
        """Fill ``amount`` (USDC for BUY, tokens for SELL) in at most retry_limit attempts."""
        remaining = amount
        filled = 0.0
        tokens = 0.0
        attempts = 0
        funds_related = False
        last_error = ""

        while remaining > DUST and attempts < self.retry_limit:
            attempts += 1
            try:
                book = await self.submitter.get_order_book(market)
            except Exception as exc:
                funds_related, last_error = False, f"order book unavailable: {exc}"
                logger.warning(
                    "order_attempt_failed",
                    market=market,
                    attempt=attempts,
                    error=last_error,
                    error_type=type(exc).__name__,
                )
                continue

            level = book.best_ask() if side == BUY else book.best_bid()
            if level is None:
                funds_related, last_error = True, "no liquidity on the book"
                logger.warning("order_attempt_failed", market=market, attempt=attempts, error=last_error)
                continue

            price, level_size = level
            order_size = min(remaining, level_size * price) if side == BUY else min(remaining, level_size)
            try:
                fill = await self.submitter.submit_market_order(market, side, order_size)
            except InsufficientFundsError as exc:
                reason = f"insufficient balance or allowance: {exc}"
                logger.error("copy_aborted", market=market, side=side, attempt=attempts, reason=reason)
                return ExecutionResult(
                    outcome=ExecutionOutcome.ABORTED_INSUFFICIENT_FUNDS,
                    attempts=attempts,
                    requested=amount,
                    filled=filled,
                    tokens_bought=tokens,
                    reason=reason,
                )
            except Exception as exc:
                # Any other failure is retryable and uses up this attempt.
                funds_related, last_error = False, str(exc) or type(exc).__name__
                logger.warning(
                    "order_attempt_failed",
                    market=market,
                    attempt=attempts,
                    error=last_error,
                    error_type=type(exc).__name__,
                )
                continue

            if fill.filled_amount <= 0:
                funds_related, last_error = True, "order not filled"
                logger.warning("order_attempt_failed", market=market, attempt=attempts, error=last_error)
                continue

            filled += fill.filled_amount
            remaining -= fill.filled_amount
            if side == BUY:
                tokens += fill.filled_amount / (fill.avg_price or price)
            funds_related, last_error = True, "book depth exhausted before full fill"
            logger.info(
                "order_filled",
                market=market,
                side=side,
                attempt=attempts,
                filled=round(fill.filled_amount, 4),
                price=fill.avg_price or price,
                remaining=round(max(remaining, 0.0), 4),
            )

        if remaining <= DUST:
            logger.info(
                "copy_succeeded",
                market=market,
                side=side,
                filled=round(filled, 4),
                tokens_bought=round(tokens, 4),
                attempts=attempts,
            )
            return ExecutionResult(
                outcome=ExecutionOutcome.SUCCEEDED,
                attempts=attempts,
                requested=amount,
                filled=filled,
                tokens_bought=tokens,
                reason=f"filled {filled:.4f} in {attempts} attempt(s)",
            )

        outcome = (
            ExecutionOutcome.ABORTED_INSUFFICIENT_FUNDS
            if funds_related
            else ExecutionOutcome.RETRIES_EXHAUSTED
        )
        reason = f"{last_error} after {attempts} attempt(s); filled {filled:.4f} of {amount:.4f}"
        logger.error("copy_aborted", market=market, side=side, outcome=outcome.value, reason=reason)
        return ExecutionResult(
            outcome=outcome,
            attempts=attempts,
            requested=amount,
            filled=filled,
            tokens_bought=tokens,
            reason=reason,
        )

    # ── Persistence ─────────────────────────────────────────────────

    async def _mark_one(self, record_key: RecordKey, result: ExecutionResult) -> bool:
        trader_address, transaction_hash = record_key
        try:
            changed = await self.store.mark_processed(trader_address, transaction_hash, result)
        except DatabaseError as exc:
            logger.error(
                "mark_processed_failed",
                trader=trader_address,
                tx=transaction_hash,
                outcome=result.outcome.value,
                error=str(exc),
                msg="trade stays unmarked; will re-mark without re-executing",
            )
            self._unmarked[record_key] = result
            return False
        if not changed:
            logger.warning("already_marked", trader=trader_address, tx=transaction_hash, outcome=result.outcome.value)
        return True
