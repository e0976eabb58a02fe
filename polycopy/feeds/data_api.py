"""Polymarket data API client for trader activity and positions.

Endpoints:
  GET /activity?user=<addr>&type=TRADE  -> list of activity dicts (camelCase)
  GET /positions?user=<addr>            -> list of position dicts

Empty or ``null`` bodies are treated as empty lists; a trader with no
recent activity is normal.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from polycopy.execution.models import TYPE_TRADE, Position
from polycopy.execution.retry import with_backoff

logger = structlog.get_logger()

DATA_API_BASE = "https://data-api.polymarket.com"
ACTIVITY_ENDPOINT = "/activity"
POSITIONS_ENDPOINT = "/positions"


def _float(raw: dict[str, Any], key: str) -> float:
    try:
        return float(raw.get(key) or 0.0)
    except (TypeError, ValueError):
        return 0.0


def parse_position(raw: dict[str, Any]) -> Optional[Position]:
    condition_id = raw.get("conditionId")
    if not condition_id:
        return None
    return Position(
        condition_id=condition_id,
        asset=str(raw.get("asset") or ""),
        size=_float(raw, "size"),
        avg_price=_float(raw, "avgPrice"),
        current_value=_float(raw, "currentValue"),
        title=str(raw.get("title") or ""),
        slug=str(raw.get("slug") or ""),
    )


class DataApiClient:
    """Async data API client. Also serves as the executor's PositionProvider."""

    def __init__(
        self,
        base_url: str = DATA_API_BASE,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_list(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{self.base_url}{path}"

        async def _do() -> list[dict[str, Any]]:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            body = resp.text.strip()
            if not body or body == "null":
                return []
            data = resp.json()
            return [d for d in data if isinstance(d, dict)] if isinstance(data, list) else []

        return await with_backoff(
            _do,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            operation=f"data_api{path}",
        )

    async def get_activities(self, address: str, activity_type: str = TYPE_TRADE) -> list[dict[str, Any]]:
        return await self._get_list(ACTIVITY_ENDPOINT, {"user": address, "type": activity_type})

    async def get_raw_positions(self, address: str) -> list[dict[str, Any]]:
        return await self._get_list(POSITIONS_ENDPOINT, {"user": address})

    async def get_positions(self, account: str) -> list[Position]:
        positions = []
        for raw in await self.get_raw_positions(account):
            pos = parse_position(raw)
            if pos is not None:
                positions.append(pos)
        return positions
