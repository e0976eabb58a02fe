#!/usr/bin/env python3
"""Copy trades of one or more Polymarket traders.

Usage:
    python scripts/run_copy_trader.py              # run until SIGINT/SIGTERM
    python scripts/run_copy_trader.py --health     # run the health check and exit
    python scripts/run_copy_trader.py --db-url sqlite+aiosqlite:///data/test.db

All other settings come from the environment / .env (see config/settings.py).
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

# Add project root to path for imports
_project_root = Path(__file__).parent.parent
sys.path.insert(0, str(_project_root))

import structlog

from polycopy.utils.logging import configure_logging

configure_logging()

from config.settings import Settings
from config.validators import parse_user_addresses, validate_settings
from polycopy.db import ActivityStore, Database
from polycopy.engine import CopyTradeEngine, EngineConfig
from polycopy.exceptions import ConfigurationError
from polycopy.execution.aggregator import TradeAggregator
from polycopy.execution.clob import ClobOrderSubmitter
from polycopy.execution.executor import TradeExecutor
from polycopy.feeds import DataApiClient, UsdcBalanceReader
from polycopy.health import perform_health_check
from polycopy.monitor import TradeMonitor
from polycopy.strategy.sizing import CopyStrategyConfig

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Polymarket copy trader")
    parser.add_argument("--health", action="store_true", help="Run the health check and exit")
    parser.add_argument("--db-url", default="", help="Override DATABASE_URL")
    return parser


async def main() -> int:
    args = build_parser().parse_args()
    settings = Settings()
    if args.db_url:
        settings.DATABASE_URL = args.db_url

    try:
        validate_settings(settings)
    except ConfigurationError as exc:
        logger.error("configuration_invalid", error=str(exc))
        return 1

    traders = parse_user_addresses(settings.USER_ADDRESSES)
    timeout = settings.REQUEST_TIMEOUT_MS / 1000
    db = Database(settings.DATABASE_URL)
    data_api = DataApiClient(
        settings.DATA_API_URL,
        timeout=timeout,
        max_attempts=settings.NETWORK_RETRY_LIMIT,
    )
    balances = UsdcBalanceReader(
        settings.RPC_URL,
        settings.USDC_CONTRACT_ADDRESS,
        timeout=timeout,
        max_attempts=settings.NETWORK_RETRY_LIMIT,
    )

    try:
        await db.init()

        if args.health:
            result = await perform_health_check(
                db=db, balances=balances, data_api=data_api, proxy_wallet=settings.PROXY_WALLET,
            )
            logger.info("health_check_done", healthy=result.healthy)
            return 0 if result.healthy else 1

        store = ActivityStore(db)
        strategy = CopyStrategyConfig.from_settings(settings)
        executor = TradeExecutor(
            store=store,
            submitter=ClobOrderSubmitter.from_settings(settings),
            balances=balances,
            positions=data_api,
            strategy=strategy,
            proxy_wallet=settings.PROXY_WALLET,
            retry_limit=settings.RETRY_LIMIT,
            min_order_tokens=settings.MIN_ORDER_SIZE_TOKENS,
        )
        monitor = TradeMonitor(
            store=store,
            client=data_api,
            trader_addresses=traders,
            fetch_interval=settings.FETCH_INTERVAL,
            too_old_hours=settings.TOO_OLD_TIMESTAMP,
        )
        engine = CopyTradeEngine(
            store=store,
            executor=executor,
            aggregator=TradeAggregator(),
            config=EngineConfig.from_settings(settings),
            monitor=monitor,
        )
        logger.info(
            "copy_trader_configured",
            traders=len(traders),
            strategy=strategy.strategy.value,
            copy_size=strategy.copy_size,
            max_order=strategy.max_order_size_usd,
            min_order=strategy.min_order_size_usd,
        )

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info("shutdown_signal_received")
            engine.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        # Loops exit at a tick boundary; the in-flight order finishes first.
        await engine.run()
        return 0
    finally:
        await data_api.close()
        await balances.close()
        await db.close()
        logger.info("resources_released")


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
