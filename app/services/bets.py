"""
Bet placement and cancellation.

Schema-level rules (stake, selection count, distinct fixtures) live on
`BetCreate`; this module enforces the rules that need the database: betting
settings, league limits, kickoff cutoff, match availability and the weekly
budget, which is debited and refunded with single guarded UPDATEs.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.db import Bet, BetSelection, League, MatchResult, Profile
from app.errors import ConflictError, MaintenanceError, NotFoundError, ValidationError
from app.schemas.bets import BetCreate, BetSelectionCreate, CancelBetResponse
from app.schemas.core import BetStatus, BetType, GlobalRole
from app.services import settings
from app.services.selections import UnsupportedSelection, decode_selection
from app.utils.dates import to_naive_utc
from app.utils.odds import combined_odds, round_money

logger = logging.getLogger(__name__)


def _kickoff(db: Session, fixture_id: int, declared: Optional[datetime]) -> Optional[datetime]:
    """The stored kickoff wins; a client-declared one is only used for fixtures we have not seen."""
    row = db.query(MatchResult.kickoff_time).filter(MatchResult.fixture_id == fixture_id).first()
    if row is not None and row[0] is not None:
        return row[0]
    return to_naive_utc(declared) if declared is not None else None


def _check_not_finished(db: Session, fixture_id: int) -> None:
    finished = db.query(MatchResult.id).filter(
        MatchResult.fixture_id == fixture_id,
        MatchResult.outcome.isnot(None)
    ).first()
    if finished is not None:
        raise ValidationError(f"betting closed for fixture {fixture_id}: match already finished")


def _check_cutoff(kickoff: Optional[datetime], cutoff: timedelta, now: datetime, fixture_id: int) -> None:
    if kickoff is not None and now >= kickoff - cutoff:
        raise ValidationError(f"betting closed for fixture {fixture_id}")


def _check_stake_limits(league: League, stake: float) -> None:
    if stake < league.min_bet:
        raise ValidationError(f"minimum stake for this league is {league.min_bet}")
    if league.max_bet is not None and stake > league.max_bet:
        raise ValidationError(f"maximum stake for this league is {league.max_bet}")


def _decode(selection: BetSelectionCreate) -> Dict:
    try:
        return decode_selection(selection.market, selection.selection).to_dict()
    except UnsupportedSelection as e:
        raise ValidationError(f"unsupported selection: {e}") from e


def debit_budget(db: Session, user_id: str, amount: float) -> bool:
    updated = db.query(Profile).filter(
        Profile.id == user_id,
        Profile.weekly_budget >= amount
    ).update({"weekly_budget": Profile.weekly_budget - amount}, synchronize_session=False)
    return updated == 1


def refund_budget(db: Session, user_id: str, amount: float) -> None:
    db.query(Profile).filter(Profile.id == user_id).update(
        {"weekly_budget": Profile.weekly_budget + amount}, synchronize_session=False
    )


def place_bet(db: Session, profile: Profile, request: BetCreate, now: Optional[datetime] = None) -> Bet:
    now = now or datetime.utcnow()

    if settings.maintenance_mode(db) and profile.global_role != GlobalRole.SUPERADMIN.value:
        raise MaintenanceError()

    if profile.league_id is None:
        raise ValidationError("not in a league: join a league before betting")
    league = db.get(League, profile.league_id)
    if league is None:
        raise NotFoundError("league not found")

    _check_stake_limits(league, request.stake)

    developer_mode = settings.developer_mode(db)
    cutoff = timedelta(minutes=settings.cutoff_minutes(db))

    legs = []
    for selection in request.selections:
        code = _decode(selection)
        _check_not_finished(db, selection.fixture_id)
        kickoff = _kickoff(db, selection.fixture_id, selection.kickoff)
        if not developer_mode:
            _check_cutoff(kickoff, cutoff, now, selection.fixture_id)
        if kickoff is not None and not settings.is_date_enabled(db, league.id, kickoff.date()):
            raise ValidationError(f"betting disabled for {kickoff.date().isoformat()}")
        legs.append(BetSelection(
            fixture_id=selection.fixture_id,
            market=selection.market,
            selection=selection.selection,
            odds=selection.odds,
            selection_code=code,
            match_description=selection.match_description,
            kickoff=kickoff,
        ))

    stake = round_money(request.stake)
    if not debit_budget(db, profile.id, stake):
        db.rollback()
        raise ValidationError("insufficient budget for this stake")

    bet = Bet(
        user_id=profile.id,
        league_id=league.id,
        stake=stake,
        odds=combined_odds(s.odds for s in request.selections),
        bet_type=BetType.COMBO.value if request.is_combo else BetType.SINGLE.value,
        status=BetStatus.PENDING.value,
        week=league.week,
        selections=legs,
    )
    if not request.is_combo:
        only = request.selections[0]
        bet.fixture_id = only.fixture_id
        bet.market = only.market
        bet.selection = only.selection

    db.add(bet)
    db.commit()
    db.refresh(bet)

    logger.info(f"Bet {bet.id} placed by {profile.id}: {bet.bet_type} stake {stake} @ {bet.odds}")
    return bet


def cancel_bet(db: Session, profile: Profile, bet_id: int, now: Optional[datetime] = None) -> CancelBetResponse:
    now = now or datetime.utcnow()

    bet = db.query(Bet).filter(Bet.id == bet_id, Bet.user_id == profile.id).first()
    if bet is None:
        raise NotFoundError("bet not found")
    if bet.status != BetStatus.PENDING.value:
        raise ConflictError("bet not pending: only pending bets can be cancelled")

    if not settings.developer_mode(db):
        cutoff = timedelta(minutes=settings.cutoff_minutes(db))
        kickoffs = [k for k in (_kickoff(db, s.fixture_id, s.kickoff) for s in bet.selections) if k is not None]
        if kickoffs:
            _check_cutoff(min(kickoffs), cutoff, now, bet.selections[0].fixture_id)

    cancelled = db.query(Bet).filter(
        Bet.id == bet.id,
        Bet.status == BetStatus.PENDING.value
    ).update({"status": BetStatus.CANCELLED.value, "settled_at": now}, synchronize_session=False)
    if not cancelled:
        db.rollback()
        raise ConflictError("bet not pending: only pending bets can be cancelled")

    db.query(BetSelection).filter(
        BetSelection.bet_id == bet.id,
        BetSelection.status == BetStatus.PENDING.value
    ).update({"status": BetStatus.CANCELLED.value}, synchronize_session=False)
    refund_budget(db, profile.id, bet.stake)
    db.commit()

    logger.info(f"Bet {bet.id} cancelled by {profile.id}, refunded {bet.stake}")
    return CancelBetResponse(bet_id=bet.id, status=BetStatus.CANCELLED.value, refunded=bet.stake)


def list_user_bets(
    db: Session,
    user_id: str,
    week: Optional[int] = None,
    status: Optional[str] = None
) -> List[Bet]:
    query = db.query(Bet).filter(Bet.user_id == user_id)
    if week is not None:
        query = query.filter(Bet.week == week)
    if status:
        query = query.filter(Bet.status == status)
    return query.order_by(Bet.created_at.desc(), Bet.id.desc()).all()
