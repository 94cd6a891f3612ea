"""
API-Football (v3) client.

Only the handful of endpoints the odds refresh and the settlement run need.
Responses are consumed verbatim: every call returns the provider's
`response` array.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import (
    API_FOOTBALL_KEY, API_FOOTBALL_BASE, FIXTURES_TIMEOUT_SECONDS, ODDS_TIMEOUT_SECONDS,
    FINISHED_FIXTURES_LOOKBACK
)
from app.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


class FootballAPI:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = API_FOOTBALL_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else API_FOOTBALL_KEY
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get(self, path: str, params: Dict[str, Any], timeout: float) -> List[Dict[str, Any]]:
        if not self.api_key:
            raise ConfigurationError("API_FOOTBALL_KEY")

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-apisports-key": self.api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=self.transport,
        ) as client:
            try:
                response = await client.get(path, params=params)
            except httpx.HTTPError as e:
                raise UpstreamError(f"{path} request failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"{path} fetch failed: {response.status_code} {response.text[:200]}",
                status=response.status_code,
            )

        payload = response.json()
        items = payload.get("response") if isinstance(payload, dict) else None
        return items if isinstance(items, list) else []

    async def upcoming_fixtures(self, league: int, season: int, next_count: int) -> List[Dict[str, Any]]:
        return await self._get(
            "/fixtures",
            {"league": league, "season": season, "next": next_count},
            FIXTURES_TIMEOUT_SECONDS,
        )

    async def fixture_odds(self, fixture_id: int) -> List[Dict[str, Any]]:
        return await self._get("/odds", {"fixture": fixture_id}, ODDS_TIMEOUT_SECONDS)

    async def bulk_odds(
        self, league: int, season: int, date: str, bookmaker: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params = {"league": league, "season": season, "date": date}
        if bookmaker is not None:
            params["bookmaker"] = bookmaker
        return await self._get("/odds", params, ODDS_TIMEOUT_SECONDS)

    async def finished_fixtures(
        self, league: int, status: str = "FT", last: int = FINISHED_FIXTURES_LOOKBACK
    ) -> List[Dict[str, Any]]:
        return await self._get(
            "/fixtures",
            {"league": league, "status": status, "last": last},
            FIXTURES_TIMEOUT_SECONDS,
        )

    async def fixtures_by_date(self, date: str) -> List[Dict[str, Any]]:
        return await self._get("/fixtures", {"date": date}, FIXTURES_TIMEOUT_SECONDS)

    async def fixture_by_id(self, fixture_id: int) -> Optional[Dict[str, Any]]:
        items = await self._get("/fixtures", {"id": fixture_id}, FIXTURES_TIMEOUT_SECONDS)
        return items[0] if items else None


def get_football_api() -> FootballAPI:
    return FootballAPI()
