"""
Leagues, standings and the weekly reset.
"""

import logging
import secrets
import string
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import DEFAULT_WEEKLY_BUDGET
from app.db import Bet, League, Payment, Profile
from app.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.schemas.core import BetStatus, LeagueType, PaymentType, Role
from app.schemas.leagues import LeagueCreate

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_LENGTH = 8


def generate_join_code(db: Session) -> str:
    while True:
        code = "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))
        if not db.query(League.id).filter(League.join_code == code).first():
            return code


def create_league(db: Session, owner: Profile, request: LeagueCreate) -> League:
    if owner.league_id is not None:
        raise ConflictError("already in a league: leave your current league first")

    league = League(
        name=request.name.strip(),
        type=LeagueType.STANDARD.value,
        join_code=generate_join_code(db),
        budget=request.budget,
        min_bet=request.min_bet,
        max_bet=request.max_bet,
        created_by=owner.id,
    )
    db.add(league)
    db.flush()

    owner.league_id = league.id
    owner.role = Role.ADMIN_LEAGUE.value
    owner.weekly_budget = league.budget
    db.commit()
    db.refresh(league)

    logger.info(f"League {league.id} ({league.name}) created by {owner.id}")
    return league


def join_league(db: Session, profile: Profile, join_code: str) -> League:
    if profile.league_id is not None:
        raise ConflictError("already in a league: leave your current league first")

    league = db.query(League).filter(League.join_code == join_code.strip().upper()).first()
    if league is None:
        raise NotFoundError("invalid join code")

    profile.league_id = league.id
    profile.weekly_budget = league.budget
    db.commit()
    logger.info(f"Profile {profile.id} joined league {league.id}")
    return league


def leave_league(db: Session, user_id: str) -> Dict[str, Any]:
    """Detach a user from their league; returns the state that was reset."""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError("User not found")

    previous = {
        "previous_league_id": profile.league_id,
        "previous_total_points": profile.total_points,
        "previous_last_week_points": profile.last_week_points,
    }

    profile.total_points = 0.0
    profile.last_week_points = 0.0
    profile.league_id = None
    db.query(Bet).filter(Bet.user_id == user_id).update({"week": 0}, synchronize_session=False)
    db.commit()

    logger.info(f"Profile {user_id} left league {previous['previous_league_id']}")
    return {
        "success": True,
        "message": "Successfully left the league",
        "user_id": user_id,
        **previous,
        "reset_at": datetime.utcnow().isoformat(),
    }


def standings(db: Session, league_id: int) -> Dict[str, Any]:
    league = db.get(League, league_id)
    if league is None:
        raise NotFoundError("league not found")

    members = db.query(Profile).filter(Profile.league_id == league_id).order_by(
        Profile.total_points.desc(), Profile.username
    ).all()

    return {
        "league_id": league.id,
        "week": league.week,
        "standings": [
            {
                "position": position,
                "user_id": member.id,
                "username": member.username,
                "total_points": member.total_points,
                "last_week_points": member.last_week_points,
            }
            for position, member in enumerate(members, start=1)
        ],
    }


def _week_payouts(db: Session, league: League) -> Dict[str, float]:
    rows = db.query(Bet.user_id, func.coalesce(func.sum(Bet.payout), 0.0)).join(
        Profile, Profile.id == Bet.user_id
    ).filter(
        Profile.league_id == league.id,
        Bet.week == league.week
    ).group_by(Bet.user_id).all()
    return {user_id: float(total) for user_id, total in rows}


def reset_league_week(db: Session, league: League) -> Dict[str, Any]:
    """Close the league's current week: record points, advance the week, refill budgets."""
    payouts = _week_payouts(db, league)
    members = db.query(Profile).filter(Profile.league_id == league.id).all()

    for member in members:
        points = round(payouts.get(member.id, 0.0), 2)
        history = dict(member.weekly_points_history or {})
        history[str(league.week)] = points
        member.last_week_points = points
        member.weekly_points_history = history
        member.weekly_budget = league.budget

    closed_week = league.week
    league.week = closed_week + 1
    db.commit()

    logger.info(f"League {league.id} week {closed_week} closed for {len(members)} members")
    return {"league_id": league.id, "closed_week": closed_week, "week": league.week, "members": len(members)}


def reset_week(db: Session, league_id: Optional[int] = None) -> Dict[str, Any]:
    if league_id is not None:
        league = db.get(League, league_id)
        if league is None:
            raise NotFoundError("league not found")
        return {
            "ok": True,
            "message": f"Manual week reset completed successfully for league {league_id}",
            "leagues": [reset_league_week(db, league)],
            "league_id": league_id,
        }

    results = [reset_league_week(db, league) for league in db.query(League).order_by(League.id).all()]
    db.query(Profile).filter(Profile.league_id.is_(None)).update(
        {"weekly_budget": DEFAULT_WEEKLY_BUDGET}, synchronize_session=False
    )
    db.commit()
    return {
        "ok": True,
        "message": "Manual week reset completed successfully for all leagues",
        "leagues": results,
    }


def recalculate_points(db: Session) -> int:
    """total_points = sum of payouts of won bets still attached to a league week."""
    won_payouts = select(func.coalesce(func.sum(Bet.payout), 0.0)).where(
        Bet.user_id == Profile.id,
        Bet.status == BetStatus.WON.value,
        Bet.week > 0
    ).scalar_subquery()

    updated = db.query(Profile).update({"total_points": won_payouts}, synchronize_session=False)
    db.commit()
    logger.info(f"Recalculated total points for {updated} profiles")
    return updated


def reset_budgets(db: Session, amount: float = DEFAULT_WEEKLY_BUDGET) -> int:
    updated = db.query(Profile).update({"weekly_budget": amount}, synchronize_session=False)
    db.commit()
    logger.info(f"Reset weekly budget to {amount} for {updated} profiles")
    return updated


def upgrade_to_premium(db: Session, profile: Profile) -> Dict[str, Any]:
    if profile.role != Role.ADMIN_LEAGUE.value:
        raise ForbiddenError("Only league administrators can upgrade to premium")
    if profile.league_id is None:
        raise ValidationError("User is not in a league")

    league = db.get(League, profile.league_id)
    if league is None:
        raise NotFoundError("League not found")

    if league.type == LeagueType.PREMIUM.value:
        return {"success": True, "message": "League is already premium", "already_premium": True}

    league.type = LeagueType.PREMIUM.value
    payment = Payment(
        user_id=profile.id,
        league_id=league.id,
        payment_type=PaymentType.PREMIUM.value,
        amount=0.0,
        currency="EUR",
        transaction_id=f"upgrade-{uuid.uuid4()}",
        payer_email=profile.email,
        status="completed",
        ipn_data={"source": "upgrade-league-to-premium", "free": True},
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)

    logger.info(f"League {league.id} upgraded to premium by {profile.id}")
    return {
        "success": True,
        "message": "League upgraded to premium successfully",
        "league_id": league.id,
        "payment_id": payment.id,
    }


def list_leagues(db: Session) -> List[League]:
    return db.query(League).order_by(League.created_at.desc()).all()
