"""Shared data structures for copy-trade execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Optional

from polycopy.strategy.sizing import OrderDecision

BUY = "BUY"
SELL = "SELL"
TYPE_TRADE = "TRADE"

# (trader_address, transaction_hash): one settlement tx can fill several traders.
RecordKey = tuple[str, str]


@dataclass(frozen=True, slots=True)
class PendingTrade:
    """A trader's fill as stored by the monitor. Never mutated by the engine."""

    transaction_hash: str
    trader_address: str
    condition_id: str
    asset: str
    side: str  # "BUY" or "SELL"
    usdc_size: float
    price: float
    timestamp: int
    size: float = 0.0
    title: str = ""
    slug: str = ""
    event_slug: str = ""
    outcome: str = ""

    @property
    def record_key(self) -> RecordKey:
        return (self.trader_address, self.transaction_hash)

    @property
    def market_name(self) -> str:
        return self.slug or self.asset

    @classmethod
    def from_row(cls, row: Any) -> "PendingTrade":
        """Build from a UserActivity row. Raises ValueError on missing fields."""
        for name in ("transaction_hash", "condition_id", "asset", "side"):
            if not getattr(row, name, None):
                raise ValueError(f"activity row missing {name}")
        if row.usdc_size is None or row.price is None:
            raise ValueError("activity row missing usdc_size/price")
        side = str(row.side).upper()
        if side not in (BUY, SELL):
            raise ValueError(f"unknown side {row.side!r}")
        return cls(
            transaction_hash=row.transaction_hash,
            trader_address=row.trader_address,
            condition_id=row.condition_id,
            asset=row.asset,
            side=side,
            usdc_size=float(row.usdc_size),
            price=float(row.price),
            timestamp=int(row.timestamp or 0),
            size=float(row.size or 0.0),
            title=row.title or "",
            slug=row.slug or "",
            event_slug=row.event_slug or "",
            outcome=row.outcome or "",
        )


class AggregationKey(NamedTuple):
    trader_address: str
    condition_id: str
    asset: str
    side: str

    @classmethod
    def for_trade(cls, trade: PendingTrade) -> "AggregationKey":
        return cls(trade.trader_address, trade.condition_id, trade.asset, trade.side)


@dataclass
class AggregatedTrade:
    """Open batch of small same-market, same-side trades from one trader."""

    key: AggregationKey
    trades: list[PendingTrade]
    total_usdc_size: float
    average_price: float
    first_seen: float
    last_seen: float

    @classmethod
    def start(cls, trade: PendingTrade, now: float) -> "AggregatedTrade":
        return cls(
            key=AggregationKey.for_trade(trade),
            trades=[trade],
            total_usdc_size=trade.usdc_size,
            average_price=trade.price,
            first_seen=now,
            last_seen=now,
        )

    def add(self, trade: PendingTrade, now: float) -> None:
        """Append a trade and recompute the notional-weighted average price."""
        self.trades.append(trade)
        self.total_usdc_size = sum(t.usdc_size for t in self.trades)
        if self.total_usdc_size > 0:
            self.average_price = (
                sum(t.usdc_size * t.price for t in self.trades) / self.total_usdc_size
            )
        self.last_seen = now

    def age(self, now: float) -> float:
        return now - self.first_seen

    @property
    def market_name(self) -> str:
        first = self.trades[0]
        return first.slug or first.asset

    def as_trade(self) -> PendingTrade:
        """Synthetic trade carrying the batch total and average price.

        Identity and display fields come from the first constituent.
        """
        first = self.trades[0]
        return PendingTrade(
            transaction_hash=first.transaction_hash,
            trader_address=self.key.trader_address,
            condition_id=self.key.condition_id,
            asset=self.key.asset,
            side=self.key.side,
            usdc_size=self.total_usdc_size,
            price=self.average_price,
            timestamp=first.timestamp,
            size=sum(t.size for t in self.trades),
            title=first.title,
            slug=first.slug,
            event_slug=first.event_slug,
            outcome=first.outcome,
        )


class TradeCondition(str, Enum):
    BUY = "buy"
    MERGE = "merge"  # trader sells, we hold: unwind our position
    SELL = "sell"  # trader sells, we hold nothing


class ExecutionOutcome(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    ABORTED_INSUFFICIENT_FUNDS = "ABORTED_INSUFFICIENT_FUNDS"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    SKIPPED = "SKIPPED"
    HISTORICAL = "HISTORICAL"  # pre-existing at startup, never executed


@dataclass(slots=True)
class ExecutionResult:
    """Terminal result of one execution cycle."""

    outcome: ExecutionOutcome
    condition: Optional[TradeCondition] = None
    attempts: int = 0
    requested: float = 0.0
    filled: float = 0.0
    tokens_bought: float = 0.0
    decision: Optional[OrderDecision] = None
    reason: str = ""


@dataclass(slots=True)
class Position:
    """One of our holdings, as reported by the data API."""

    condition_id: str
    asset: str
    size: float
    avg_price: float = 0.0
    current_value: float = 0.0
    title: str = ""
    slug: str = ""

    @property
    def cost_basis(self) -> float:
        return self.size * self.avg_price


@dataclass(slots=True)
class OrderBook:
    """Price levels as ``(price, size)``. Order of the input lists is not trusted."""

    bids: list[tuple[float, float]] = field(default_factory=list)
    asks: list[tuple[float, float]] = field(default_factory=list)

    def best_bid(self) -> Optional[tuple[float, float]]:
        return max(self.bids, key=lambda level: level[0]) if self.bids else None

    def best_ask(self) -> Optional[tuple[float, float]]:
        return min(self.asks, key=lambda level: level[0]) if self.asks else None


@dataclass(slots=True)
class FillResult:
    """Result of a market order. ``filled_amount`` uses the order's size unit."""

    filled_amount: float
    avg_price: float = 0.0
    order_id: str = ""
