"""Async access to the user_activities table.

Query contract: pending trades are ``type = 'TRADE' AND processed = false``.
Mutate contract: ``processed`` is set once, through a conditional update, so
marking the same transaction twice changes nothing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from polycopy.db.database import Database
from polycopy.db.models import UserActivity
from polycopy.exceptions import DatabaseError
from polycopy.execution.models import TYPE_TRADE, ExecutionOutcome, ExecutionResult, PendingTrade

logger = structlog.get_logger()


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def activity_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Map a data-API activity (camelCase) to UserActivity columns."""
    outcome_index = raw.get("outcomeIndex")
    return {
        "transaction_hash": raw.get("transactionHash") or "",
        "type": raw.get("type") or TYPE_TRADE,
        "proxy_wallet": raw.get("proxyWallet"),
        "timestamp": int(_to_float(raw.get("timestamp")) or 0),
        "condition_id": raw.get("conditionId"),
        "asset": raw.get("asset"),
        "side": raw.get("side"),
        "size": _to_float(raw.get("size")),
        "usdc_size": _to_float(raw.get("usdcSize")),
        "price": _to_float(raw.get("price")),
        "outcome_index": int(outcome_index) if isinstance(outcome_index, (int, float)) else None,
        "outcome": raw.get("outcome"),
        "title": raw.get("title"),
        "slug": raw.get("slug"),
        "event_slug": raw.get("eventSlug"),
    }


class ActivityStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def load_pending(self, trader_address: str) -> list[PendingTrade]:
        """Unprocessed trades for one trader, oldest first.

        Rows that do not parse into a PendingTrade are skipped.
        """
        try:
            async with self.db.session() as s:
                result = await s.execute(
                    select(UserActivity)
                    .where(
                        UserActivity.trader_address == trader_address,
                        UserActivity.type == TYPE_TRADE,
                        UserActivity.processed.is_(False),
                    )
                    .order_by(UserActivity.timestamp, UserActivity.id)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise DatabaseError(f"loading pending trades for {trader_address}: {exc}") from exc

        trades: list[PendingTrade] = []
        for row in rows:
            try:
                trades.append(PendingTrade.from_row(row))
            except (TypeError, ValueError) as exc:
                logger.debug("activity_row_skipped", tx=row.transaction_hash, reason=str(exc))
        return trades

    async def load_all_pending(self, trader_addresses: Iterable[str]) -> list[PendingTrade]:
        trades: list[PendingTrade] = []
        for address in trader_addresses:
            trades.extend(await self.load_pending(address))
        return trades

    async def mark_processed(
        self, trader_address: str, transaction_hash: str, result: ExecutionResult
    ) -> bool:
        """Record the outcome on one trade. Returns False if it was already marked."""
        try:
            async with self.db.session() as s:
                res = await s.execute(
                    update(UserActivity)
                    .where(
                        UserActivity.trader_address == trader_address,
                        UserActivity.transaction_hash == transaction_hash,
                        UserActivity.processed.is_(False),
                    )
                    .values(
                        processed=True,
                        attempts=result.attempts,
                        execution_outcome=result.outcome.value,
                        my_bought_size=result.tokens_bought or None,
                        processed_at=datetime.utcnow(),
                    )
                )
                return res.rowcount > 0
        except SQLAlchemyError as exc:
            raise DatabaseError(f"marking {transaction_hash} processed: {exc}") from exc

    async def mark_history_processed(self, trader_address: str) -> int:
        """Mark every unprocessed row of a trader as HISTORICAL. Returns the count."""
        try:
            async with self.db.session() as s:
                res = await s.execute(
                    update(UserActivity)
                    .where(
                        UserActivity.trader_address == trader_address,
                        UserActivity.processed.is_(False),
                    )
                    .values(
                        processed=True,
                        execution_outcome=ExecutionOutcome.HISTORICAL.value,
                        processed_at=datetime.utcnow(),
                    )
                )
                return res.rowcount
        except SQLAlchemyError as exc:
            raise DatabaseError(f"marking history for {trader_address}: {exc}") from exc

    async def exists(self, trader_address: str, transaction_hash: str) -> bool:
        try:
            async with self.db.session() as s:
                result = await s.execute(
                    select(UserActivity.id).where(
                        UserActivity.trader_address == trader_address,
                        UserActivity.transaction_hash == transaction_hash,
                    )
                )
                return result.first() is not None
        except SQLAlchemyError as exc:
            raise DatabaseError(f"checking {transaction_hash}: {exc}") from exc

    async def save_activity(
        self,
        trader_address: str,
        raw: dict[str, Any],
        *,
        historical: bool = False,
    ) -> bool:
        """Insert an activity. Returns False if the trader already has this hash."""
        fields = activity_fields(raw)
        if not fields["transaction_hash"]:
            return False
        row = UserActivity(trader_address=trader_address, **fields)
        if historical:
            row.processed = True
            row.execution_outcome = ExecutionOutcome.HISTORICAL.value
            row.processed_at = datetime.utcnow()
        try:
            async with self.db.session() as s:
                s.add(row)
            return True
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise DatabaseError(f"saving {fields['transaction_hash']}: {exc}") from exc

    async def count(self, trader_address: str) -> int:
        try:
            async with self.db.session() as s:
                result = await s.execute(
                    select(func.count(UserActivity.id)).where(
                        UserActivity.trader_address == trader_address
                    )
                )
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise DatabaseError(f"counting activities for {trader_address}: {exc}") from exc

    async def get(self, trader_address: str, transaction_hash: str) -> Optional[UserActivity]:
        try:
            async with self.db.session() as s:
                result = await s.execute(
                    select(UserActivity).where(
                        UserActivity.trader_address == trader_address,
                        UserActivity.transaction_hash == transaction_hash,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"loading {transaction_hash}: {exc}") from exc
