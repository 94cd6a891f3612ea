"""
Admin endpoints for betting settings and per-date match availability.
"""
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import ForbiddenError
from app.schemas.leagues import AvailabilityUpdate, SettingUpdate
from app.services import settings
from app.services.capabilities import Caller, LEAGUE_ADMIN, SUPERADMIN, require, require_superadmin

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require(SUPERADMIN, LEAGUE_ADMIN)


def _check_league_scope(caller: Caller, league_id: Optional[int]) -> None:
    # League admins manage their own league only; global rows are superadmin territory.
    if caller.has(SUPERADMIN):
        return
    if league_id is None or caller.profile.league_id != league_id:
        raise ForbiddenError("League administrators can only manage their own league")


@router.get("/settings")
def get_settings(
    caller: Caller = Depends(require_superadmin),
    db: Session = Depends(get_db)
):
    return {"settings": settings.list_settings(db)}


@router.put("/settings")
def update_setting(
    request: SettingUpdate,
    caller: Caller = Depends(require_superadmin),
    db: Session = Depends(get_db)
):
    row = settings.set_setting(db, request.setting_key, request.setting_value, request.description)
    return {
        "setting_key": row.setting_key,
        "setting_value": row.setting_value,
        "description": row.description,
    }


@router.get("/availability")
def get_availability(
    league_id: Optional[int] = None,
    start: Optional[date] = None,
    days: int = Query(default=14, ge=1, le=60),
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Availability rows for a window of dates starting today (or `start`)."""
    _check_league_scope(caller, league_id)
    start = start or date.today()
    end = start + timedelta(days=days - 1)
    return {
        "league_id": league_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "days": settings.availability_window(db, league_id, start, end),
    }


@router.put("/availability")
def update_availability(
    request: AvailabilityUpdate,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db)
):
    _check_league_scope(caller, request.league_id)
    row = settings.set_availability(db, request.league_id, request.date, request.is_live_betting_enabled)
    return {
        "league_id": row.league_id,
        "date": row.date.isoformat(),
        "is_live_betting_enabled": row.is_live_betting_enabled,
    }
