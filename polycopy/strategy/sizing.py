"""Copy sizing policy.

Turns a trader's order notional into the amount we should place, given our
available balance. Stages run in a fixed order (strategy, multiplier, max
cap, balance, minimum floor) and each stage that changes the amount appends
a clause to the rationale so operators can read why a size was chosen.

The policy is a pure function; logging happens at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()

DEFAULT_SAFETY_BUFFER = 0.99


class CopyStrategy(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    ADAPTIVE = "ADAPTIVE"

    @classmethod
    def parse(cls, value: str) -> "CopyStrategy":
        """Case-insensitive lookup. Unknown names fall back to PERCENTAGE."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.PERCENTAGE


@dataclass(frozen=True, slots=True)
class CopyStrategyConfig:
    strategy: CopyStrategy = CopyStrategy.PERCENTAGE
    copy_size: float = 10.0
    max_order_size_usd: float = 100.0
    min_order_size_usd: float = 1.0
    safety_buffer: float = DEFAULT_SAFETY_BUFFER

    @classmethod
    def from_settings(cls, settings) -> "CopyStrategyConfig":
        """Build from Settings, honouring the legacy COPY_PERCENTAGE form."""
        if settings.COPY_PERCENTAGE is not None and not settings.COPY_STRATEGY:
            effective = settings.COPY_PERCENTAGE * settings.TRADE_MULTIPLIER
            logger.warning(
                "legacy_copy_percentage_config",
                copy_percentage=settings.COPY_PERCENTAGE,
                trade_multiplier=settings.TRADE_MULTIPLIER,
                effective_percentage=effective,
                hint="migrate to COPY_STRATEGY + COPY_SIZE",
            )
            return cls(
                strategy=CopyStrategy.PERCENTAGE,
                copy_size=effective,
                max_order_size_usd=settings.MAX_ORDER_SIZE_USD,
                min_order_size_usd=settings.MIN_ORDER_SIZE_USD,
                safety_buffer=settings.BALANCE_SAFETY_BUFFER,
            )
        return cls(
            strategy=CopyStrategy.parse(settings.COPY_STRATEGY or "PERCENTAGE"),
            copy_size=settings.COPY_SIZE,
            max_order_size_usd=settings.MAX_ORDER_SIZE_USD,
            min_order_size_usd=settings.MIN_ORDER_SIZE_USD,
            safety_buffer=settings.BALANCE_SAFETY_BUFFER,
        )


@dataclass(frozen=True, slots=True)
class OrderDecision:
    """Result of the sizing policy. ``final_amount == 0`` means do not submit."""

    source_amount: float
    strategy: CopyStrategy
    base_amount: float
    multiplier: float
    final_amount: float
    capped_by_max: bool
    reduced_by_balance: bool
    below_minimum: bool
    reasoning: str

    @property
    def should_execute(self) -> bool:
        return self.final_amount > 0


def adaptive_percent(config: CopyStrategyConfig, source_amount: float) -> float:
    """Copy percentage for the ADAPTIVE strategy.

    Only the degenerate form exists: the configured copy_size regardless of
    the source amount. Threshold-based min/max percentages plug in here.
    """
    return config.copy_size


def trade_multiplier(config: CopyStrategyConfig, source_amount: float) -> float:
    """Multiplier applied after the strategy stage. Tiered bands plug in here."""
    return 1.0


def compute_order_size(
    source_amount: float,
    available_balance: float,
    current_exposure: float,
    config: CopyStrategyConfig,
) -> OrderDecision:
    """Size a copy order.

    Parameters
    ----------
    source_amount:
        Trader's order notional in USDC.
    available_balance:
        Our spendable USDC balance.
    current_exposure:
        USDC value of our existing position in the market. Accepted so
        position-limit rules can be added without changing callers; it does
        not affect the amount today.
    config:
        Strategy settings.
    """
    if config.strategy is CopyStrategy.PERCENTAGE:
        base = source_amount * (config.copy_size / 100.0)
        reasoning = f"{config.copy_size:g}% of trader's ${source_amount:.2f} = ${base:.2f}"
    elif config.strategy is CopyStrategy.FIXED:
        base = config.copy_size
        reasoning = f"Fixed amount: ${base:.2f}"
    elif config.strategy is CopyStrategy.ADAPTIVE:
        pct = adaptive_percent(config, source_amount)
        base = source_amount * (pct / 100.0)
        reasoning = f"Adaptive {pct:.1f}% of trader's ${source_amount:.2f} = ${base:.2f}"
    else:  # pragma: no cover - enum is closed
        raise ValueError(f"Unknown copy strategy: {config.strategy}")

    multiplier = trade_multiplier(config, source_amount)
    amount = base * multiplier
    if multiplier != 1.0:
        reasoning += f" -> {multiplier:g}x multiplier: ${base:.2f} -> ${amount:.2f}"

    capped_by_max = False
    if amount > config.max_order_size_usd:
        amount = config.max_order_size_usd
        capped_by_max = True
        reasoning += f" -> Capped at max ${config.max_order_size_usd:.2f}"

    reduced_by_balance = False
    affordable = max(0.0, available_balance * config.safety_buffer)
    if amount > affordable:
        amount = affordable
        reduced_by_balance = True
        reasoning += f" -> Reduced to fit balance (${affordable:.2f})"

    below_minimum = False
    if amount < config.min_order_size_usd:
        below_minimum = True
        reasoning += f" -> Below minimum ${config.min_order_size_usd:.2f}"
        amount = 0.0

    return OrderDecision(
        source_amount=source_amount,
        strategy=config.strategy,
        base_amount=base,
        multiplier=multiplier,
        final_amount=amount,
        capped_by_max=capped_by_max,
        reduced_by_balance=reduced_by_balance,
        below_minimum=below_minimum,
        reasoning=reasoning,
    )
