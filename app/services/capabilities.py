"""
Capability checks for every privileged endpoint.

A request is resolved once into a `Caller` carrying the capabilities it
proved: the internal shared secret, the service-role key, or a user JWT
(with the superadmin / league admin roles of its profile). Endpoints declare
what they accept with `require(...)`; anything else gets a bare 401.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app import config
from app.db import get_db, Profile
from app.errors import ConfigurationError, UnauthorizedError
from app.schemas.core import GlobalRole, Role

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

INTERNAL = "internal"
SERVICE = "service"
USER = "user"
SUPERADMIN = "superadmin"
LEAGUE_ADMIN = "league_admin"

PRIVILEGED = (INTERNAL, SERVICE, SUPERADMIN)


@dataclass
class Caller:
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    profile: Optional[Profile] = None

    def has(self, *capabilities: str) -> bool:
        return any(c in self.capabilities for c in capabilities)

    @property
    def user_id(self) -> Optional[str]:
        return self.profile.id if self.profile else None


def _matches(presented: Optional[str], expected: Optional[str]) -> bool:
    if not presented or not expected:
        return False
    return secrets.compare_digest(presented.encode(), expected.encode())


def issue_token(profile_id: str, expires_minutes: int = 60) -> str:
    payload = {
        "sub": profile_id,
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def profile_from_token(db: Session, token: str) -> Optional[Profile]:
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.PyJWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    return db.query(Profile).filter(Profile.id == str(subject)).first()


async def _body_secret(request: Request) -> Optional[str]:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    return body.get("internal_secret") if isinstance(body, dict) else None


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Caller:
    capabilities = set()
    profile = None

    presented = request.headers.get("x-internal-secret") or await _body_secret(request)
    if _matches(presented, config.INTERNAL_FUNCTION_SECRET):
        capabilities.add(INTERNAL)

    if credentials:
        token = credentials.credentials
        if _matches(token, config.SERVICE_ROLE_KEY):
            capabilities.add(SERVICE)
        else:
            profile = profile_from_token(db, token)
            if profile is not None:
                capabilities.add(USER)
                if profile.global_role == GlobalRole.SUPERADMIN.value:
                    capabilities.add(SUPERADMIN)
                if profile.role == Role.ADMIN_LEAGUE.value:
                    capabilities.add(LEAGUE_ADMIN)

    return Caller(capabilities=frozenset(capabilities), profile=profile)


def require(*capabilities: str):
    """Dependency accepting a caller holding at least one of `capabilities`."""

    async def dependency(request: Request, caller: Caller = Depends(get_caller)) -> Caller:
        if INTERNAL in capabilities and not config.INTERNAL_FUNCTION_SECRET:
            raise ConfigurationError("INTERNAL_FUNCTION_SECRET")
        if not caller.has(*capabilities):
            logger.warning(f"Unauthorized call to {request.url.path}")
            raise UnauthorizedError()
        return caller

    return dependency


require_user = require(USER)
require_internal = require(INTERNAL)
require_privileged = require(*PRIVILEGED)
require_superadmin = require(SUPERADMIN)
