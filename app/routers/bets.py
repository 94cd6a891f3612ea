from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db import get_db
from app.schemas.bets import BetCreate, BetRead, CancelBetResponse
from app.schemas.core import BetStatus
from app.services.bets import cancel_bet, list_user_bets, place_bet
from app.services.capabilities import Caller, require_user

router = APIRouter(prefix="/bets", tags=["bets"])


@router.post("", response_model=BetRead, status_code=201)
def create_bet(
    request: BetCreate,
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db)
):
    return place_bet(db, caller.profile, request)


@router.get("", response_model=List[BetRead])
def list_bets(
    week: Optional[int] = Query(default=None, ge=0),
    status: Optional[BetStatus] = None,
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db)
):
    return list_user_bets(db, caller.user_id, week=week, status=status.value if status else None)


@router.post("/{bet_id}/cancel", response_model=CancelBetResponse)
def cancel(
    bet_id: int,
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db)
):
    return cancel_bet(db, caller.profile, bet_id)
