"""Buffer that batches small buys into one copy order.

Owned by the executor loop only. Every method is synchronous, so on a single
event loop ``offer`` and ``flush_ready`` can never observe a half-updated
batch.
"""

from __future__ import annotations

import time
from typing import Optional

import structlog

from polycopy.execution.models import BUY, AggregatedTrade, AggregationKey, PendingTrade, RecordKey

logger = structlog.get_logger()


def should_aggregate(trade: PendingTrade, min_total: float) -> bool:
    """Only buys below the immediate-execution threshold wait in the buffer."""
    return trade.side == BUY and trade.usdc_size < min_total


class TradeAggregator:
    def __init__(self) -> None:
        self._groups: dict[AggregationKey, AggregatedTrade] = {}
        self._buffered: set[RecordKey] = set()
        self._discarded: list[AggregatedTrade] = []

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, record_key: object) -> bool:
        """``(trader_address, transaction_hash) in aggregator``."""
        return record_key in self._buffered

    def get(self, key: AggregationKey) -> Optional[AggregatedTrade]:
        return self._groups.get(key)

    def pending_groups(self) -> list[AggregatedTrade]:
        return list(self._groups.values())

    def offer(self, trade: PendingTrade, now: Optional[float] = None) -> bool:
        """Add a trade to its batch. Returns False if it is already buffered."""
        if trade.record_key in self._buffered:
            return False
        now = time.time() if now is None else now
        key = AggregationKey.for_trade(trade)
        group = self._groups.get(key)
        if group is None:
            self._groups[key] = AggregatedTrade.start(trade, now)
        else:
            group.add(trade, now)
        self._buffered.add(trade.record_key)
        logger.info(
            "aggregation_offer",
            market=trade.market_name,
            side=trade.side,
            usdc_size=round(trade.usdc_size, 2),
            group_total=round(self._groups[key].total_usdc_size, 2),
            group_trades=len(self._groups[key].trades),
        )
        return True

    def flush_ready(self, now: float, window: float, min_total: float) -> list[AggregatedTrade]:
        """Remove every batch whose window has elapsed.

        Batches reaching ``min_total`` are returned for execution. The rest
        are queued for ``take_discarded()`` so their trades still get marked.
        """
        ready: list[AggregatedTrade] = []
        for key in [k for k, g in self._groups.items() if g.age(now) >= window]:
            group = self._groups.pop(key)
            for trade in group.trades:
                self._buffered.discard(trade.record_key)
            if group.total_usdc_size >= min_total:
                ready.append(group)
            else:
                logger.info(
                    "aggregation_below_minimum",
                    trader=key.trader_address,
                    market=group.market_name,
                    total=round(group.total_usdc_size, 2),
                    trades=len(group.trades),
                    min_total=min_total,
                    msg="skipping",
                )
                self._discarded.append(group)
        return ready

    def take_discarded(self) -> list[AggregatedTrade]:
        discarded, self._discarded = self._discarded, []
        return discarded
