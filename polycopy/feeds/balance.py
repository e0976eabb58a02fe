"""On-chain USDC balance via a Polygon JSON-RPC endpoint."""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from polycopy.exceptions import NetworkError
from polycopy.execution.retry import with_backoff

logger = structlog.get_logger()

# balanceOf(address)
BALANCE_OF_SELECTOR = "0x70a08231"
USDC_DECIMALS = 6


class UsdcBalanceReader:
    """Reads ``balanceOf`` on the USDC contract. Implements BalanceProvider."""

    def __init__(
        self,
        rpc_url: str,
        usdc_address: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.usdc_address = usdc_address
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        async def _do() -> Any:
            resp = await self._client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "method": method, "params": params, "id": 1},
            )
            resp.raise_for_status()
            return resp.json()

        payload = await with_backoff(
            _do,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            operation=f"rpc_{method}",
        )
        if not isinstance(payload, dict) or "result" not in payload:
            error = payload.get("error") if isinstance(payload, dict) else payload
            raise NetworkError(f"RPC {method} returned no result: {error}")
        return payload["result"]

    async def get_available_balance(self, account: str) -> float:
        padded = account.lower().replace("0x", "").zfill(64)
        result = await self._rpc(
            "eth_call",
            [{"to": self.usdc_address, "data": BALANCE_OF_SELECTOR + padded}, "latest"],
        )
        # Some nodes answer "0x" for an empty word.
        if not result or result == "0x":
            result = "0x0"
        balance = int(result, 16) / 10 ** USDC_DECIMALS
        logger.debug("usdc_balance", account=account, balance=balance)
        return balance

    async def block_number(self) -> int:
        result = await self._rpc("eth_blockNumber", [])
        return int(result, 16)
