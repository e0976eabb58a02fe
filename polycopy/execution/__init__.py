from polycopy.execution.models import (
    AggregatedTrade,
    AggregationKey,
    ExecutionOutcome,
    ExecutionResult,
    FillResult,
    OrderBook,
    PendingTrade,
    Position,
    RecordKey,
    TradeCondition,
)
from polycopy.execution.aggregator import TradeAggregator, should_aggregate
from polycopy.execution.submitter import BalanceProvider, OrderSubmitter, PositionProvider

__all__ = [
    "AggregatedTrade",
    "AggregationKey",
    "ExecutionOutcome",
    "ExecutionResult",
    "FillResult",
    "OrderBook",
    "PendingTrade",
    "Position",
    "RecordKey",
    "TradeCondition",
    "TradeAggregator",
    "should_aggregate",
    "BalanceProvider",
    "OrderSubmitter",
    "PositionProvider",
]
