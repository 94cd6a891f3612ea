"""
Tests for the API-Football client.
"""
import httpx
import pytest

from app.errors import ConfigurationError, UpstreamError
from app.services.football_api import FootballAPI

from conftest import make_fixture, make_odds


def api_with(handler):
    return FootballAPI(api_key="k3y", base_url="https://football.test/", transport=httpx.MockTransport(handler))


class TestFootballAPI:

    @pytest.mark.asyncio
    async def test_sends_key_and_returns_response_array(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"response": [make_fixture(1)], "results": 1})

        fixtures = await api_with(handler).upcoming_fixtures(140, 2025, 10)

        assert fixtures[0]["fixture"]["id"] == 1
        assert seen[0].headers["x-apisports-key"] == "k3y"
        assert seen[0].url.path == "/fixtures"
        assert dict(seen[0].url.params) == {"league": "140", "season": "2025", "next": "10"}

    @pytest.mark.asyncio
    async def test_bulk_odds_params(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"response": [make_odds(1), make_odds(2)]})

        odds = await api_with(handler).bulk_odds(140, 2025, "2025-10-26", bookmaker=8)

        assert len(odds) == 2
        assert dict(seen[0].url.params) == {"league": "140", "season": "2025", "date": "2025-10-26", "bookmaker": "8"}

    @pytest.mark.asyncio
    async def test_fixture_by_id(self):
        def handler(request):
            if request.url.params["id"] == "7":
                return httpx.Response(200, json={"response": [make_fixture(7, status="FT")]})
            return httpx.Response(200, json={"response": []})

        api = api_with(handler)

        assert (await api.fixture_by_id(7))["fixture"]["status"]["short"] == "FT"
        assert await api.fixture_by_id(8) is None

    @pytest.mark.asyncio
    async def test_non_200_raises_upstream_error(self):
        def handler(request):
            return httpx.Response(429, text="Too many requests")

        with pytest.raises(UpstreamError) as exc:
            await api_with(handler).finished_fixtures(140)

        assert exc.value.status == 429
        assert "429" in exc.value.message

    @pytest.mark.asyncio
    async def test_transport_error_raises_upstream_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError):
            await api_with(handler).fixtures_by_date("2025-10-26")

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_request(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"response": []})

        api = FootballAPI(api_key="", transport=httpx.MockTransport(handler))

        assert api.is_configured() is False
        with pytest.raises(ConfigurationError):
            await api.fixture_odds(1)
        assert seen == []

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_empty(self):
        def handler(request):
            return httpx.Response(200, json={"errors": {"token": "invalid"}})

        assert await api_with(handler).fixture_odds(1) == []
