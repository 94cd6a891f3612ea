from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.leagues import JoinLeagueRequest, LeagueCreate, LeagueRead, StandingsResponse
from app.services import leagues as league_service
from app.services.capabilities import Caller, require_user

router = APIRouter(prefix="/leagues", tags=["leagues"])


@router.post("", response_model=LeagueRead, status_code=201)
def create_league(
    request: LeagueCreate,
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db)
):
    """Create a league; the creator becomes its administrator."""
    return league_service.create_league(db, caller.profile, request)


@router.post("/join", response_model=LeagueRead)
def join_league(
    request: JoinLeagueRequest,
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db)
):
    return league_service.join_league(db, caller.profile, request.join_code)


@router.get("/{league_id}/standings", response_model=StandingsResponse)
def get_standings(
    league_id: int,
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db)
):
    return league_service.standings(db, league_id)
