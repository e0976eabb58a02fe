# tests/feeds/test_data_api.py
import pytest
import respx
from httpx import Response

from polycopy.exceptions import NetworkError
from polycopy.feeds.data_api import DataApiClient, parse_position

BASE = "https://data-api.test"
USER = "0x" + "a" * 40


@pytest.fixture
def mock_api():
    with respx.mock:
        yield respx


class TestParsePosition:
    def test_parse_position(self):
        pos = parse_position({
            "conditionId": "0xcond",
            "asset": "token-yes",
            "size": "12.5",
            "avgPrice": 0.4,
            "currentValue": 6.1,
            "slug": "will-it-rain",
        })
        assert pos.condition_id == "0xcond"
        assert pos.size == 12.5
        assert pos.cost_basis == pytest.approx(5.0)

    def test_parse_position_without_condition(self):
        assert parse_position({"asset": "x", "size": 1}) is None


class TestDataApiClient:
    @pytest.mark.asyncio
    async def test_get_activities(self, mock_api):
        route = mock_api.get(f"{BASE}/activity").mock(
            return_value=Response(200, json=[{"transactionHash": "0xt1"}, "junk"])
        )
        client = DataApiClient(BASE, base_delay=0)

        activities = await client.get_activities(USER)

        assert activities == [{"transactionHash": "0xt1"}]
        assert route.calls.last.request.url.params["user"] == USER
        assert route.calls.last.request.url.params["type"] == "TRADE"
        await client.close()

    @pytest.mark.asyncio
    async def test_null_body_is_empty(self, mock_api):
        mock_api.get(f"{BASE}/activity").mock(return_value=Response(200, text="null"))
        client = DataApiClient(BASE, base_delay=0)
        assert await client.get_activities(USER) == []
        await client.close()

    @pytest.mark.asyncio
    async def test_get_positions(self, mock_api):
        mock_api.get(f"{BASE}/positions").mock(
            return_value=Response(200, json=[
                {"conditionId": "0xc1", "asset": "t1", "size": 3},
                {"asset": "orphan"},
            ])
        )
        client = DataApiClient(BASE, base_delay=0)

        positions = await client.get_positions(USER)

        assert [p.condition_id for p in positions] == ["0xc1"]
        await client.close()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, mock_api):
        route = mock_api.get(f"{BASE}/positions").mock(
            side_effect=[Response(502), Response(200, json=[])]
        )
        client = DataApiClient(BASE, base_delay=0)

        assert await client.get_positions(USER) == []
        assert route.call_count == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_raises_network_error_after_attempts(self, mock_api):
        route = mock_api.get(f"{BASE}/activity").mock(return_value=Response(500))
        client = DataApiClient(BASE, max_attempts=3, base_delay=0)

        with pytest.raises(NetworkError):
            await client.get_activities(USER)
        assert route.call_count == 3
        await client.close()
