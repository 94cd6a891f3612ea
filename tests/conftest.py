"""
Shared fixtures: an in-memory database per test, a TestClient bound to it,
and factories for profiles, leagues and bearer tokens. Upstream HTTP (API-Football,
PayPal) goes through httpx.MockTransport.
"""
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import config
from app.db import Base, League, Profile, get_db
from app.main import app
from app.services.capabilities import issue_token
from app.services.football_api import FootballAPI, get_football_api
from app.services.monitoring import CallMonitor
from app.services.payments import IPNVerifier, get_ipn_verifier
from app.utils.cache import settings_cache

INTERNAL_SECRET = "test-internal-secret"
SERVICE_KEY = "eyJservice-role-key-for-tests"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def secrets_and_cache(monkeypatch):
    monkeypatch.setattr(config, "INTERNAL_FUNCTION_SECRET", INTERNAL_SECRET)
    monkeypatch.setattr(config, "SERVICE_ROLE_KEY", SERVICE_KEY)
    monkeypatch.setattr(config, "JWT_SECRET", "test-jwt-secret")
    settings_cache.clear()
    yield
    settings_cache.clear()


class FakeProvider:
    """Routes API-Football requests to canned responses keyed by path and params."""

    def __init__(self):
        self.fixtures: Dict[int, List[dict]] = {}
        self.finished: Dict[int, List[dict]] = {}
        self.by_date: Dict[str, List[dict]] = {}
        self.odds: Dict[int, List[dict]] = {}
        self.failing_odds: set = set()
        self.fixtures_status: int = 200
        self.failing_leagues: set = set()
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params

        if request.url.path == "/fixtures":
            if self.fixtures_status != 200:
                return httpx.Response(self.fixtures_status, text="Internal Server Error")
            if "date" in params:
                return httpx.Response(200, json={"response": self.by_date.get(params["date"], [])})
            league = int(params["league"])
            if league in self.failing_leagues:
                return httpx.Response(500, text="Internal Server Error")
            if "status" in params:
                items = [fx for fx in self.finished.get(league, [])
                         if fx["fixture"]["status"]["short"] == params["status"]]
                return httpx.Response(200, json={"response": items})
            return httpx.Response(200, json={"response": self.fixtures.get(league, [])})

        if request.url.path == "/odds":
            fixture_id = int(params["fixture"])
            if fixture_id in self.failing_odds:
                return httpx.Response(500, text="odds backend down")
            return httpx.Response(200, json={"response": self.odds.get(fixture_id, [])})

        return httpx.Response(404, json={"errors": ["unknown endpoint"]})


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def football_api(provider) -> FootballAPI:
    return FootballAPI(
        api_key="test-api-key",
        base_url="https://football.test",
        transport=httpx.MockTransport(provider.handler),
    )


class FakePayPal:
    def __init__(self, verdict: str = "VERIFIED"):
        self.verdict = verdict
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, text=self.verdict)


@pytest.fixture
def paypal() -> FakePayPal:
    return FakePayPal()


@pytest.fixture
def ipn_verifier(paypal) -> IPNVerifier:
    return IPNVerifier(transport=httpx.MockTransport(paypal.handler))


@pytest.fixture
def client(db, football_api, ipn_verifier):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_football_api] = lambda: football_api
    app.dependency_overrides[get_ipn_verifier] = lambda: ipn_verifier
    app.state.monitor = CallMonitor()

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_league(db) -> Callable[..., League]:
    def factory(name: str = "Amigos", **fields) -> League:
        league = League(
            name=name,
            join_code=fields.pop("join_code", uuid.uuid4().hex[:8].upper()),
            **fields,
        )
        db.add(league)
        db.commit()
        db.refresh(league)
        return league

    return factory


@pytest.fixture
def make_profile(db) -> Callable[..., Profile]:
    def factory(username: Optional[str] = None, league: Optional[League] = None, **fields) -> Profile:
        profile = Profile(
            username=username or f"user{uuid.uuid4().hex[:8]}",
            email=fields.pop("email", "player@example.com"),
            league_id=league.id if league else None,
            **fields,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return factory


@pytest.fixture
def auth_headers() -> Callable[[Profile], Dict[str, str]]:
    def factory(profile: Profile) -> Dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(profile.id)}"}

    return factory


@pytest.fixture
def internal_headers() -> Dict[str, str]:
    return {"x-internal-secret": INTERNAL_SECRET}


@pytest.fixture
def service_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {SERVICE_KEY}"}


def make_fixture(
    fixture_id: int,
    home: str = "Real Madrid",
    away: str = "Barcelona",
    kickoff: str = "2025-10-26T15:00:00+00:00",
    goals: Optional[tuple] = None,
    halftime: Optional[tuple] = None,
    status: str = "NS",
    league_id: int = 140,
    league_name: str = "La Liga",
) -> dict:
    """An API-Football fixture item."""
    home_goals, away_goals = goals if goals else (None, None)
    ht_home, ht_away = halftime if halftime else (None, None)
    return {
        "fixture": {"id": fixture_id, "date": kickoff, "status": {"short": status}},
        "league": {"id": league_id, "name": league_name, "season": 2025},
        "teams": {"home": {"id": 1, "name": home}, "away": {"id": 2, "name": away}},
        "goals": {"home": home_goals, "away": away_goals},
        "score": {
            "halftime": {"home": ht_home, "away": ht_away},
            "fulltime": {"home": home_goals, "away": away_goals},
        },
    }


def make_odds(fixture_id: int, home: str = "1.80", draw: str = "3.40", away: str = "4.20") -> dict:
    return {
        "fixture": {"id": fixture_id},
        "bookmakers": [{
            "id": 8,
            "name": "Bet365",
            "bets": [{
                "id": 1,
                "name": "Match Winner",
                "values": [
                    {"value": "Home", "odd": home},
                    {"value": "Draw", "odd": draw},
                    {"value": "Away", "odd": away},
                ],
            }],
        }],
    }


NOW = datetime(2025, 10, 20, 12, 0, 0)
