"""Startup health check: database, RPC, wallet balance and data API."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from polycopy.db.database import Database
from polycopy.feeds.balance import UsdcBalanceReader
from polycopy.feeds.data_api import DataApiClient

logger = structlog.get_logger()

LOW_BALANCE_USD = 10.0
_ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class HealthCheckResult:
    healthy: bool
    checks: dict[str, tuple[str, str]] = field(default_factory=dict)


async def perform_health_check(
    *,
    db: Database,
    balances: UsdcBalanceReader,
    data_api: DataApiClient,
    proxy_wallet: str,
) -> HealthCheckResult:
    checks: dict[str, tuple[str, str]] = {}

    try:
        await db.ping()
        checks["database"] = ("ok", "Connected")
    except Exception as exc:
        checks["database"] = ("error", f"Connection failed: {exc}")

    try:
        block = await balances.block_number()
        checks["rpc"] = ("ok", f"RPC endpoint responding (block {block})")
    except Exception as exc:
        checks["rpc"] = ("error", f"RPC check failed: {exc}")

    try:
        balance = await balances.get_available_balance(proxy_wallet)
        if balance <= 0:
            checks["balance"] = ("error", "Zero balance")
        elif balance < LOW_BALANCE_USD:
            checks["balance"] = ("warning", f"Low balance: ${balance:.2f}")
        else:
            checks["balance"] = ("ok", f"Balance: ${balance:.2f}")
    except Exception as exc:
        checks["balance"] = ("error", f"Balance check failed: {exc}")

    try:
        await data_api.get_raw_positions(_ZERO_ADDRESS)
        checks["polymarketApi"] = ("ok", "API responding")
    except Exception as exc:
        checks["polymarketApi"] = ("error", f"API check failed: {exc}")

    healthy = (
        checks["database"][0] == "ok"
        and checks["rpc"][0] == "ok"
        and checks["balance"][0] != "error"
        and checks["polymarketApi"][0] == "ok"
    )
    for name, (status, message) in checks.items():
        log = logger.info if status == "ok" else logger.warning
        log("health_check", check=name, status=status, detail=message)
    return HealthCheckResult(healthy=healthy, checks=checks)
