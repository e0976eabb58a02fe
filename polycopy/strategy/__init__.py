"""Copy sizing strategies."""

from polycopy.strategy.sizing import (
    CopyStrategy,
    CopyStrategyConfig,
    OrderDecision,
    compute_order_size,
)

__all__ = ["CopyStrategy", "CopyStrategyConfig", "OrderDecision", "compute_order_size"]
