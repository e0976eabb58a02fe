"""Trade monitor: pulls tracked traders' activity into storage.

Each pass fetches TRADE activities per trader, drops those older than the
cutoff and duplicate hashes within the batch, and inserts the rest.
Activities timestamped before the engine started are stored already marked,
so only trades made after startup are ever copied.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Optional, Sequence

import structlog

from polycopy.exceptions import CopyTradeError
from polycopy.feeds.data_api import DataApiClient
from polycopy.utils.errors import short_address

if TYPE_CHECKING:
    from polycopy.db.activities import ActivityStore

logger = structlog.get_logger()


class TradeMonitor:
    def __init__(
        self,
        *,
        store: "ActivityStore",
        client: DataApiClient,
        trader_addresses: Sequence[str],
        fetch_interval: float = 1.0,
        too_old_hours: float = 24.0,
    ) -> None:
        self.store = store
        self.client = client
        self.trader_addresses = tuple(trader_addresses)
        self.fetch_interval = fetch_interval
        self.too_old_hours = too_old_hours
        self.started_at: float = time.time()

    async def run(self, stop: asyncio.Event) -> None:
        await self.log_summary()
        logger.info(
            "monitor_started",
            traders=len(self.trader_addresses),
            interval=self.fetch_interval,
        )
        while not stop.is_set():
            try:
                await self.fetch_once()
            except Exception as exc:
                logger.error("monitor_fetch_error", error=str(exc))
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.fetch_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("monitor_stopped")

    async def log_summary(self) -> None:
        for address in self.trader_addresses:
            try:
                count = await self.store.count(address)
            except CopyTradeError as exc:
                logger.error("monitor_count_failed", trader=short_address(address), error=str(exc))
                continue
            logger.info("trader_tracked", trader=short_address(address), stored_activities=count)

    async def fetch_once(self, now: Optional[float] = None) -> int:
        """One pass over every trader. Returns the number of new trades stored."""
        now = time.time() if now is None else now
        cutoff = now - self.too_old_hours * 3600
        total = 0
        for address in self.trader_addresses:
            try:
                total += await self._sync_trader(address, cutoff)
            except CopyTradeError as exc:
                logger.error("monitor_trader_failed", trader=short_address(address), error=str(exc))
        return total

    async def _sync_trader(self, address: str, cutoff: float) -> int:
        activities = await self.client.get_activities(address)
        seen: set[str] = set()
        new = 0
        for raw in activities:
            tx = raw.get("transactionHash")
            if not tx or tx in seen:
                continue
            seen.add(tx)
            try:
                ts = float(raw.get("timestamp") or 0)
            except (TypeError, ValueError):
                continue
            if ts < cutoff:
                continue
            if await self.store.exists(address, tx):
                continue
            historical = ts < self.started_at
            if await self.store.save_activity(address, raw, historical=historical):
                if not historical:
                    new += 1
                    logger.info(
                        "new_trade_detected",
                        trader=short_address(address),
                        tx=tx,
                        side=raw.get("side"),
                        usdc_size=raw.get("usdcSize"),
                        market=raw.get("slug") or raw.get("asset"),
                    )
        return new
