"""
Tests for caller resolution and capability checks.
"""
from datetime import datetime, timedelta

import jwt
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app import config
from app.db import get_db
from app.errors import JambolError
from app.main import jambol_error_handler
from app.services.capabilities import (
    Caller,
    INTERNAL,
    LEAGUE_ADMIN,
    SERVICE,
    SUPERADMIN,
    USER,
    get_caller,
    issue_token,
    profile_from_token,
)


def whoami_client(db):
    """A tiny app that echoes the resolved capabilities."""
    app = FastAPI()
    app.add_exception_handler(JambolError, jambol_error_handler)

    @app.post("/whoami")
    def whoami(caller: Caller = Depends(get_caller)):
        return {"capabilities": sorted(caller.capabilities), "user_id": caller.user_id}

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


class TestTokens:

    def test_issue_and_resolve(self, db, make_profile):
        player = make_profile(username="player")
        assert profile_from_token(db, issue_token(player.id)).id == player.id

    def test_expired_token(self, db, make_profile):
        player = make_profile(username="player")
        assert profile_from_token(db, issue_token(player.id, expires_minutes=-1)) is None

    def test_wrong_signature(self, db, make_profile):
        player = make_profile(username="player")
        forged = jwt.encode(
            {"sub": player.id, "exp": datetime.utcnow() + timedelta(minutes=5)},
            "not-the-secret",
            algorithm=config.JWT_ALGORITHM,
        )
        assert profile_from_token(db, forged) is None

    def test_unknown_subject(self, db):
        assert profile_from_token(db, issue_token("ghost")) is None


class TestGetCaller:

    def test_anonymous(self, db):
        response = whoami_client(db).post("/whoami")
        assert response.json() == {"capabilities": [], "user_id": None}

    def test_internal_secret_header(self, db, internal_headers):
        response = whoami_client(db).post("/whoami", headers=internal_headers)
        assert response.json()["capabilities"] == [INTERNAL]

    def test_internal_secret_in_json_body(self, db):
        response = whoami_client(db).post("/whoami", json={"internal_secret": "test-internal-secret"})
        assert response.json()["capabilities"] == [INTERNAL]

    def test_service_key(self, db, service_headers):
        response = whoami_client(db).post("/whoami", headers=service_headers)
        assert response.json()["capabilities"] == [SERVICE]

    def test_user_roles(self, db, make_league, make_profile, auth_headers):
        admin = make_profile(username="admin", league=make_league(), role="admin_league",
                             global_role="superadmin")

        response = whoami_client(db).post("/whoami", headers=auth_headers(admin))

        assert response.json() == {
            "capabilities": sorted([USER, SUPERADMIN, LEAGUE_ADMIN]),
            "user_id": admin.id,
        }

    def test_garbage_token_is_anonymous(self, db):
        response = whoami_client(db).post("/whoami", headers={"Authorization": "Bearer nonsense"})
        assert response.json()["capabilities"] == []


class TestCallerHas:

    def test_any_of(self):
        caller = Caller(capabilities=frozenset([USER]))
        assert caller.has(SERVICE, USER) is True
        assert caller.has(SERVICE, SUPERADMIN) is False
        assert caller.user_id is None
