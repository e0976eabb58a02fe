"""Polling scheduler: wires the monitor, aggregator and executor and runs loops."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

import structlog

from config.validators import parse_user_addresses
from polycopy.exceptions import DatabaseError
from polycopy.execution.aggregator import TradeAggregator, should_aggregate
from polycopy.execution.executor import TradeExecutor
from polycopy.execution.models import AggregatedTrade, PendingTrade
from polycopy.utils.errors import short_address

if TYPE_CHECKING:
    from polycopy.db.activities import ActivityStore
    from polycopy.monitor import TradeMonitor

logger = structlog.get_logger()

# Liveness tick. Storage is queried on poll_interval, not on every tick.
MIN_TICK_SECONDS = 0.3


@dataclass(frozen=True, slots=True)
class EngineConfig:
    trader_addresses: tuple[str, ...]
    poll_interval: float = 0.3
    status_interval: float = 30.0
    aggregation_enabled: bool = False
    aggregation_window: float = 300.0
    aggregation_min_total: float = 1.0

    @classmethod
    def from_settings(cls, settings) -> "EngineConfig":
        return cls(
            trader_addresses=tuple(parse_user_addresses(settings.USER_ADDRESSES)),
            poll_interval=settings.EXECUTOR_POLL_INTERVAL,
            status_interval=settings.STATUS_INTERVAL_SECONDS,
            aggregation_enabled=settings.TRADE_AGGREGATION_ENABLED,
            aggregation_window=settings.TRADE_AGGREGATION_WINDOW_SECONDS,
            aggregation_min_total=settings.TRADE_AGGREGATION_MIN_TOTAL_USD,
        )


class CopyTradeEngine:
    """Orchestrator. Business rules live in the executor, aggregator and sizing."""

    def __init__(
        self,
        *,
        store: "ActivityStore",
        executor: TradeExecutor,
        aggregator: TradeAggregator,
        config: EngineConfig,
        monitor: Optional["TradeMonitor"] = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.aggregator = aggregator
        self.config = config
        self.monitor = monitor
        self._stop = asyncio.Event()
        self._last_poll: float = 0.0
        self._last_status: float = 0.0
        self.started_at: float = 0.0

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask both loops to exit at their next tick boundary."""
        if not self._stop.is_set():
            logger.info("engine_stop_requested")
        self._stop.set()

    async def run(self) -> None:
        await self.startup()
        loops = [self._executor_loop()]
        if self.monitor is not None:
            loops.append(self.monitor.run(self._stop))
        await asyncio.gather(*loops)
        logger.info("engine_stopped")

    async def startup(self) -> None:
        """Sweep pre-existing trades so only trades seen from now on are copied."""
        self.started_at = time.time()
        if self.monitor is not None:
            self.monitor.started_at = self.started_at
        logger.info("engine_startup", traders=len(self.config.trader_addresses))
        for address in self.config.trader_addresses:
            marked = await self.store.mark_history_processed(address)
            if marked:
                logger.info("historical_trades_marked", trader=short_address(address), count=marked)
        if self.config.aggregation_enabled:
            logger.info(
                "trade_aggregation_enabled",
                window_seconds=self.config.aggregation_window,
                min_total=self.config.aggregation_min_total,
            )
        logger.info("engine_ready", msg="monitoring for new trades only")

    # ── Executor role ───────────────────────────────────────────────

    async def _executor_loop(self) -> None:
        while not self._stop.is_set():
            now = time.time()
            if now - self._last_poll >= self.config.poll_interval:
                self._last_poll = now
                try:
                    await self.poll(now)
                except DatabaseError as exc:
                    logger.error("executor_poll_db_error", error=str(exc))
                except Exception as exc:
                    logger.error("executor_poll_error", error=str(exc))
            try:
                await self.flush(time.time())
            except Exception as exc:
                logger.error("executor_flush_error", error=str(exc))
            self._status_if_due(time.time())
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=MIN_TICK_SECONDS)
            except asyncio.TimeoutError:
                pass

    async def tick(self, now: Optional[float] = None) -> None:
        """One full pass: poll storage, then flush ready aggregations."""
        now = time.time() if now is None else now
        await self.poll(now)
        await self.flush(now)

    async def poll(self, now: float) -> None:
        """Pull unmarked trades and route them to the buffer or the executor."""
        if self.executor.unmarked_count:
            still = await self.executor.retry_unmarked()
            if still:
                logger.error("marks_still_pending", count=still)

        trades = await self.store.load_all_pending(self.config.trader_addresses)
        fresh = [
            t for t in trades
            if t.record_key not in self.aggregator
            and not self.executor.is_unmarked(t.record_key)
        ]
        if not fresh:
            return
        logger.info("new_trades_detected", count=len(fresh))

        immediate: list[PendingTrade] = []
        for trade in fresh:
            if self.config.aggregation_enabled and should_aggregate(
                trade, self.config.aggregation_min_total
            ):
                self.aggregator.offer(trade, now)
            else:
                immediate.append(trade)

        for trade in immediate:
            await self._execute(trade)

    async def flush(self, now: float) -> None:
        """Execute aggregations whose window elapsed; mark the sub-minimum ones."""
        if not self.config.aggregation_enabled:
            return
        ready = self.aggregator.flush_ready(
            now, self.config.aggregation_window, self.config.aggregation_min_total
        )
        if ready:
            logger.info("aggregations_ready", count=len(ready))
        for group in ready:
            await self._execute(group)

        for group in self.aggregator.take_discarded():
            reason = (
                f"aggregated total ${group.total_usdc_size:.2f} from {len(group.trades)} "
                f"trade(s) below minimum ${self.config.aggregation_min_total:.2f}"
            )
            try:
                await self.executor.skip(group.trades, reason)
            except Exception as exc:
                logger.error("aggregation_skip_failed", market=group.market_name, error=str(exc))

    async def _execute(self, item: Union[PendingTrade, AggregatedTrade]) -> None:
        """Execute one item; failures never reach sibling trades."""
        try:
            result = await self.executor.execute(item)
        except Exception as exc:
            hashes = (
                [t.transaction_hash for t in item.trades]
                if isinstance(item, AggregatedTrade)
                else [item.transaction_hash]
            )
            logger.error("copy_trade_failed", txs=hashes, error=str(exc), msg="left unmarked for retry")
            return
        logger.info(
            "copy_trade_done",
            outcome=result.outcome.value,
            condition=result.condition.value if result.condition else None,
            attempts=result.attempts,
            reason=result.reason,
        )

    def _status_if_due(self, now: float) -> None:
        if now - self._last_status < self.config.status_interval:
            return
        self._last_status = now
        logger.info(
            "engine_waiting",
            traders=len(self.config.trader_addresses),
            pending_groups=len(self.aggregator),
            unmarked=self.executor.unmarked_count,
        )
