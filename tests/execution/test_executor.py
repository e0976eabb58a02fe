import pytest
from unittest.mock import AsyncMock

from polycopy.exceptions import DatabaseError, ExecutionError, InsufficientFundsError, NetworkError
from polycopy.execution.aggregator import TradeAggregator
from polycopy.execution.executor import TradeExecutor, derive_condition
from polycopy.execution.models import (
    BUY,
    SELL,
    ExecutionOutcome,
    ExecutionResult,
    FillResult,
    OrderBook,
    PendingTrade,
    Position,
    TradeCondition,
)
from polycopy.strategy.sizing import CopyStrategy, CopyStrategyConfig

WALLET = "0xbbbb000000000000000000000000000000000002"
DEEP_BOOK = OrderBook(bids=[(0.49, 10_000.0)], asks=[(0.50, 10_000.0)])


def make_trade(tx: str = "0xtx1", usdc: float = 100.0, price: float = 0.5, **kw) -> PendingTrade:
    defaults = dict(
        transaction_hash=tx,
        trader_address="0xtrader",
        condition_id="0xcond",
        asset="token-yes",
        side=BUY,
        usdc_size=usdc,
        price=price,
        timestamp=1_700_000_000,
    )
    defaults.update(kw)
    return PendingTrade(**defaults)


class FakeSubmitter:
    """Scripted order submitter. ``fills`` entries are FillResult or an exception."""

    def __init__(self, fills=None, book=DEEP_BOOK):
        self.fills = list(fills or [])
        self.book = book
        self.orders: list[tuple[str, str, float]] = []
        self.book_calls = 0

    async def get_order_book(self, market):
        self.book_calls += 1
        if isinstance(self.book, Exception):
            raise self.book
        return self.book

    async def submit_market_order(self, market, side, size):
        self.orders.append((market, side, size))
        fill = self.fills.pop(0) if self.fills else FillResult(filled_amount=size, avg_price=0.5)
        if isinstance(fill, Exception):
            raise fill
        return fill


def make_executor(submitter=None, balance=1000.0, positions=None, store=None, **kw):
    if store is None:
        store = AsyncMock()
        store.mark_processed = AsyncMock(return_value=True)
    balances = AsyncMock()
    balances.get_available_balance = AsyncMock(return_value=balance)
    position_provider = AsyncMock()
    position_provider.get_positions = AsyncMock(return_value=positions or [])
    strategy = kw.pop(
        "strategy",
        CopyStrategyConfig(strategy=CopyStrategy.PERCENTAGE, copy_size=10.0, max_order_size_usd=100.0),
    )
    return TradeExecutor(
        store=store,
        submitter=submitter or FakeSubmitter(),
        balances=balances,
        positions=position_provider,
        strategy=strategy,
        proxy_wallet=WALLET,
        **kw,
    )


def marked_outcomes(executor) -> dict[str, ExecutionOutcome]:
    return {
        call.args[1]: call.args[2].outcome
        for call in executor.store.mark_processed.await_args_list
    }


# --- Condition ---

def test_derive_condition():
    pos = Position(condition_id="0xcond", asset="token-yes", size=10.0)
    assert derive_condition(make_trade(side=BUY), pos) is TradeCondition.BUY
    assert derive_condition(make_trade(side=SELL), pos) is TradeCondition.MERGE
    assert derive_condition(make_trade(side=SELL), None) is TradeCondition.SELL


# --- Buy path ---

@pytest.mark.asyncio
async def test_buy_fills_in_one_attempt():
    submitter = FakeSubmitter()
    executor = make_executor(submitter)

    result = await executor.execute(make_trade(usdc=100.0))

    assert result.outcome is ExecutionOutcome.SUCCEEDED
    assert result.attempts == 1
    assert result.filled == pytest.approx(10.0)
    assert result.tokens_bought == pytest.approx(20.0)
    assert submitter.orders == [("token-yes", BUY, pytest.approx(10.0))]
    assert marked_outcomes(executor) == {"0xtx1": ExecutionOutcome.SUCCEEDED}
    executor.balances.get_available_balance.assert_awaited_once_with(WALLET)
    executor.positions.get_positions.assert_awaited_once_with(WALLET)


@pytest.mark.asyncio
async def test_buy_order_limited_by_best_ask_depth():
    book = OrderBook(asks=[(0.60, 5.0), (0.50, 8.0)])  # best ask 0.50 x 8 = $4
    submitter = FakeSubmitter(book=book)
    executor = make_executor(submitter)

    result = await executor.execute(make_trade(usdc=100.0))

    assert [size for _, _, size in submitter.orders] == [pytest.approx(4.0), pytest.approx(4.0), pytest.approx(2.0)]
    assert result.outcome is ExecutionOutcome.SUCCEEDED
    assert result.attempts == 3


@pytest.mark.asyncio
async def test_zero_amount_is_skipped_without_submitting():
    submitter = FakeSubmitter()
    executor = make_executor(submitter, balance=0.5)

    result = await executor.execute(make_trade(usdc=100.0))

    assert result.outcome is ExecutionOutcome.SKIPPED
    assert result.decision.below_minimum is True
    assert submitter.orders == []
    assert submitter.book_calls == 0
    assert marked_outcomes(executor) == {"0xtx1": ExecutionOutcome.SKIPPED}


@pytest.mark.asyncio
async def test_insufficient_funds_aborts_without_retry():
    submitter = FakeSubmitter(fills=[InsufficientFundsError("not enough balance / allowance")])
    executor = make_executor(submitter, retry_limit=3)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.ABORTED_INSUFFICIENT_FUNDS
    assert result.attempts == 1
    assert len(submitter.orders) == 1
    assert marked_outcomes(executor) == {"0xtx1": ExecutionOutcome.ABORTED_INSUFFICIENT_FUNDS}


@pytest.mark.asyncio
async def test_retries_exhausted_after_exactly_retry_limit():
    submitter = FakeSubmitter(fills=[ExecutionError("boom")] * 5)
    executor = make_executor(submitter, retry_limit=3)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.RETRIES_EXHAUSTED
    assert result.attempts == 3
    assert len(submitter.orders) == 3
    assert "boom" in result.reason


@pytest.mark.asyncio
async def test_order_book_failures_count_as_attempts():
    submitter = FakeSubmitter(book=NetworkError("timeout"))
    executor = make_executor(submitter, retry_limit=2)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.RETRIES_EXHAUSTED
    assert result.attempts == 2
    assert submitter.orders == []


@pytest.mark.asyncio
async def test_empty_book_is_liquidity_abort():
    submitter = FakeSubmitter(book=OrderBook())
    executor = make_executor(submitter, retry_limit=3)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.ABORTED_INSUFFICIENT_FUNDS
    assert result.attempts == 3
    assert submitter.orders == []


@pytest.mark.asyncio
async def test_success_on_last_allowed_attempt():
    submitter = FakeSubmitter(fills=[ExecutionError("e1"), ExecutionError("e2"), FillResult(10.0, 0.5)])
    executor = make_executor(submitter, retry_limit=3)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.SUCCEEDED
    assert result.attempts == 3


@pytest.mark.asyncio
async def test_unexpected_submit_error_after_partial_fill_stays_bounded():
    submitter = FakeSubmitter(fills=[
        FillResult(filled_amount=5.0, avg_price=0.5),
        RuntimeError("connection reset by peer"),
        RuntimeError("connection reset by peer"),
    ])
    executor = make_executor(submitter, retry_limit=3)

    result = await executor.execute(make_trade(usdc=100.0))

    assert len(submitter.orders) == 3
    assert result.attempts == 3
    assert result.outcome is ExecutionOutcome.RETRIES_EXHAUSTED
    assert result.filled == pytest.approx(5.0)
    assert result.tokens_bought == pytest.approx(10.0)
    assert "connection reset by peer" in result.reason
    assert marked_outcomes(executor) == {"0xtx1": ExecutionOutcome.RETRIES_EXHAUSTED}


@pytest.mark.asyncio
async def test_unexpected_order_book_error_consumes_attempts():
    submitter = FakeSubmitter(book=RuntimeError("socket closed"))
    executor = make_executor(submitter, retry_limit=2)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.RETRIES_EXHAUSTED
    assert result.attempts == 2
    assert submitter.book_calls == 2
    assert submitter.orders == []
    assert marked_outcomes(executor) == {"0xtx1": ExecutionOutcome.RETRIES_EXHAUSTED}


# --- Unwind path ---

@pytest.mark.asyncio
async def test_sell_with_position_unwinds_whole_position():
    pos = Position(condition_id="0xcond", asset="token-yes", size=40.0, avg_price=0.5)
    submitter = FakeSubmitter(fills=[FillResult(filled_amount=40.0, avg_price=0.49)])
    executor = make_executor(submitter, positions=[pos])

    result = await executor.execute(make_trade(side=SELL))

    assert result.condition is TradeCondition.MERGE
    assert result.outcome is ExecutionOutcome.SUCCEEDED
    assert submitter.orders == [("token-yes", SELL, 40.0)]
    executor.balances.get_available_balance.assert_not_awaited()


@pytest.mark.asyncio
async def test_sell_without_position_is_skipped():
    submitter = FakeSubmitter()
    executor = make_executor(submitter, positions=[])

    result = await executor.execute(make_trade(side=SELL))

    assert result.condition is TradeCondition.SELL
    assert result.outcome is ExecutionOutcome.SKIPPED
    assert submitter.orders == []
    assert marked_outcomes(executor) == {"0xtx1": ExecutionOutcome.SKIPPED}


@pytest.mark.asyncio
async def test_dust_position_is_skipped():
    pos = Position(condition_id="0xcond", asset="token-yes", size=0.4)
    submitter = FakeSubmitter()
    executor = make_executor(submitter, positions=[pos], min_order_tokens=1.0)

    result = await executor.execute(make_trade(side=SELL))

    assert result.outcome is ExecutionOutcome.SKIPPED
    assert "below minimum" in result.reason
    assert submitter.orders == []


# --- Aggregated trades ---

@pytest.mark.asyncio
async def test_aggregated_trade_one_order_marks_all_constituents():
    agg = TradeAggregator()
    for tx, usdc, price in (("a", 2.0, 0.4), ("b", 3.0, 0.5), ("c", 4.0, 0.6)):
        agg.offer(make_trade(tx, usdc=usdc, price=price), now=0.0)
    group = agg.flush_ready(now=300.0, window=300.0, min_total=5.0)[0]

    submitter = FakeSubmitter()
    strategy = CopyStrategyConfig(strategy=CopyStrategy.PERCENTAGE, copy_size=100.0)
    executor = make_executor(submitter, strategy=strategy)

    result = await executor.execute(group)

    assert result.outcome is ExecutionOutcome.SUCCEEDED
    assert len(submitter.orders) == 1
    assert submitter.orders[0][2] == pytest.approx(9.0)
    assert marked_outcomes(executor) == {
        "a": ExecutionOutcome.SUCCEEDED,
        "b": ExecutionOutcome.SUCCEEDED,
        "c": ExecutionOutcome.SUCCEEDED,
    }
    per_trade = {c.args[1]: c.args[2].tokens_bought for c in executor.store.mark_processed.await_args_list}
    assert sum(per_trade.values()) == pytest.approx(result.tokens_bought)
    assert per_trade["c"] == pytest.approx(result.tokens_bought * 4 / 9)


@pytest.mark.asyncio
async def test_skip_marks_every_trade():
    executor = make_executor()
    trades = [make_trade("a"), make_trade("b")]

    result = await executor.skip(trades, "aggregation below minimum")

    assert result.outcome is ExecutionOutcome.SKIPPED
    assert marked_outcomes(executor) == {"a": ExecutionOutcome.SKIPPED, "b": ExecutionOutcome.SKIPPED}


# --- Marking ---

@pytest.mark.asyncio
async def test_failed_mark_is_remembered_and_retried_without_reexecuting():
    store = AsyncMock()
    store.mark_processed = AsyncMock(side_effect=[DatabaseError("locked"), True])
    submitter = FakeSubmitter()
    executor = make_executor(submitter, store=store)

    result = await executor.execute(make_trade())

    assert result.outcome is ExecutionOutcome.SUCCEEDED
    assert executor.is_unmarked(("0xtrader", "0xtx1"))
    assert executor.unmarked_count == 1

    assert await executor.retry_unmarked() == 0
    assert not executor.is_unmarked(("0xtrader", "0xtx1"))
    assert len(submitter.orders) == 1
    assert store.mark_processed.await_args_list[1].args[2].outcome is ExecutionOutcome.SUCCEEDED


@pytest.mark.asyncio
async def test_already_marked_is_not_a_failure():
    store = AsyncMock()
    store.mark_processed = AsyncMock(return_value=False)
    executor = make_executor(store=store)

    failed = await executor.mark([make_trade()], ExecutionResult(outcome=ExecutionOutcome.SKIPPED))

    assert failed == []
    assert executor.unmarked_count == 0


@pytest.mark.asyncio
async def test_capability_failure_leaves_trade_unmarked():
    executor = make_executor()
    executor.positions.get_positions = AsyncMock(side_effect=NetworkError("data api down"))

    with pytest.raises(NetworkError):
        await executor.execute(make_trade())

    executor.store.mark_processed.assert_not_awaited()


@pytest.mark.asyncio
async def test_marks_are_scoped_to_trader():
    executor = make_executor()
    trades = [make_trade("0xshared"), make_trade("0xshared", trader_address="0xsecond")]

    await executor.skip(trades, "noop")

    keys = [c.args[:2] for c in executor.store.mark_processed.await_args_list]
    assert keys == [("0xtrader", "0xshared"), ("0xsecond", "0xshared")]
