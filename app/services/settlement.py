"""
Settlement Processor

Fetches recently finished fixtures for a competition context, stores their
final scores and resolves every pending bet leg on them. Each status change is
a guarded UPDATE (`WHERE status = 'pending'`), so a bet is paid only by the run
that actually moved it out of pending, and points are credited with an atomic
increment.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config import FINISHED_STATUSES
from app.db import Bet, BetSelection, MatchResult, Profile
from app.errors import UpstreamError
from app.schemas.core import BetStatus, BetType, Outcome
from app.services.football_api import FootballAPI
from app.services.odds_cache import get_competition
from app.services.selections import (
    FixtureResult, SelectionCode, UnsupportedSelection, decode_selection, evaluate, outcome_from_goals
)
from app.services.task_queue import unschedule
from app.utils.dates import parse_iso_utc, season_for
from app.utils.odds import settlement_payout

logger = logging.getLogger(__name__)


def _goals(fx: Dict[str, Any]):
    goals = fx.get("goals") or {}
    fulltime = (fx.get("score") or {}).get("fulltime") or {}
    home = goals.get("home") if goals.get("home") is not None else fulltime.get("home")
    away = goals.get("away") if goals.get("away") is not None else fulltime.get("away")
    return home, away


def outcome_from_fixture(fx: Dict[str, Any]) -> Optional[Outcome]:
    """home / away / draw from the final goals; None when the provider has no score."""
    home, away = _goals(fx or {})
    if home is None or away is None:
        return None
    return outcome_from_goals(int(home), int(away))


def fixture_result(fx: Dict[str, Any]) -> Optional[FixtureResult]:
    home, away = _goals(fx or {})
    if home is None or away is None:
        return None
    halftime = (fx.get("score") or {}).get("halftime") or {}
    ht_home = halftime.get("home")
    ht_away = halftime.get("away")
    return FixtureResult(
        home_goals=int(home),
        away_goals=int(away),
        halftime_home=int(ht_home) if ht_home is not None else None,
        halftime_away=int(ht_away) if ht_away is not None else None,
    )


async def fetch_finished_fixtures(api: FootballAPI, competition: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Finished fixtures across every league and finished status. A failing
    (league, status) request is skipped; the run only fails when all of them do.
    """
    seen = {}
    errors = []
    calls = 0
    for league_id in competition["leagues"]:
        for status in FINISHED_STATUSES:
            calls += 1
            try:
                fixtures = await api.finished_fixtures(league_id, status=status)
            except UpstreamError as e:
                logger.warning(f"Skipping league {league_id} status {status}: {e.message}")
                errors.append(e)
                continue
            for fx in fixtures:
                fixture_id = (fx.get("fixture") or {}).get("id")
                if fixture_id:
                    fx.setdefault("league_id", league_id)
                    seen[fixture_id] = fx

    if calls and len(errors) == calls:
        raise errors[-1]
    return list(seen.values())


def record_results(db: Session, fixtures: Iterable[Dict[str, Any]]) -> Dict[int, FixtureResult]:
    """Upsert one MatchResult per finished fixture that has a score."""
    results = {}
    for fx in fixtures:
        fixture = fx.get("fixture") or {}
        result = fixture_result(fx)
        if result is None:
            continue

        teams = fx.get("teams") or {}
        league = fx.get("league") or {}
        home = (teams.get("home") or {}).get("name")
        away = (teams.get("away") or {}).get("name")

        row = db.query(MatchResult).filter(MatchResult.fixture_id == fixture["id"]).first()
        if row is None:
            row = MatchResult(fixture_id=fixture["id"])
            db.add(row)

        row.home_team = home or row.home_team
        row.away_team = away or row.away_team
        row.match_name = f"{row.home_team} vs {row.away_team}"
        row.league_id = league.get("id") or fx.get("league_id")
        row.season = league.get("season") or season_for()
        row.home_goals = result.home_goals
        row.away_goals = result.away_goals
        row.halftime_home = result.halftime_home
        row.halftime_away = result.halftime_away
        row.outcome = result.outcome.value
        row.match_result = f"{result.home_goals}-{result.away_goals}"
        row.kickoff_time = row.kickoff_time or parse_iso_utc(fixture.get("date"))
        row.finished_at = row.finished_at or datetime.utcnow()

        results[fixture["id"]] = result

    db.commit()
    return results


def selection_code_for(market: Optional[str], selection: Optional[str], stored: Optional[dict]) -> Optional[SelectionCode]:
    if stored:
        return SelectionCode.from_dict(stored)
    try:
        return decode_selection(market or "", selection or "")
    except UnsupportedSelection as e:
        logger.warning(f"Settling undecodable selection as lost: {e}")
        return None


def _leg_won(code: Optional[SelectionCode], result: FixtureResult) -> bool:
    return code is not None and evaluate(code, result)


def credit_points(db: Session, user_id: str, delta: float) -> None:
    db.query(Profile).filter(Profile.id == user_id).update(
        {"total_points": Profile.total_points + delta},
        synchronize_session=False
    )


def transition_bet(db: Session, bet_id: int, status: str, payout: float, now: datetime) -> bool:
    """Move a bet out of pending. False when another run already did."""
    updated = db.query(Bet).filter(
        Bet.id == bet_id,
        Bet.status == BetStatus.PENDING.value
    ).update(
        {"status": status, "payout": payout, "settled_at": now},
        synchronize_session=False
    )
    return updated == 1


def settle_selections(db: Session, results: Dict[int, FixtureResult]) -> Dict[str, Any]:
    legs = db.query(BetSelection).filter(
        BetSelection.fixture_id.in_(list(results)),
        BetSelection.status == BetStatus.PENDING.value
    ).all()

    affected = set()
    settled = 0
    for leg in legs:
        code = selection_code_for(leg.market, leg.selection, leg.selection_code)
        status = BetStatus.WON.value if _leg_won(code, results[leg.fixture_id]) else BetStatus.LOST.value

        updated = db.query(BetSelection).filter(
            BetSelection.id == leg.id,
            BetSelection.status == BetStatus.PENDING.value
        ).update({"status": status}, synchronize_session=False)
        if updated:
            settled += 1
            affected.add(leg.bet_id)

    db.commit()
    return {"selections": settled, "bet_ids": affected}


def resolve_bet(db: Session, bet_id: int, now: datetime) -> Optional[Dict[str, Any]]:
    """
    Resolve a bet from its legs: any lost leg loses the bet, all legs won wins
    it, anything else leaves it pending.
    """
    bet = db.query(Bet).filter(Bet.id == bet_id).first()
    if bet is None or bet.status != BetStatus.PENDING.value:
        return None

    statuses = [s for (s,) in db.query(BetSelection.status).filter(BetSelection.bet_id == bet_id).all()]
    if not statuses:
        return None

    if BetStatus.LOST.value in statuses:
        status = BetStatus.LOST.value
    elif all(s == BetStatus.WON.value for s in statuses):
        status = BetStatus.WON.value
    else:
        return None

    payout = settlement_payout(bet.stake, bet.odds, status == BetStatus.WON.value)
    if not transition_bet(db, bet.id, status, payout, now):
        return None
    if payout > 0:
        credit_points(db, bet.user_id, payout)
    db.commit()
    return {"bet_id": bet.id, "user_id": bet.user_id, "status": status, "payout": payout, "bet_type": bet.bet_type}


def unresolved_bet_ids(db: Session) -> List[int]:
    """Pending bets whose legs already decide them, e.g. when a run stopped between legs and bets."""
    rows = db.query(Bet.id).filter(
        Bet.status == BetStatus.PENDING.value,
        Bet.selections.any(),
        or_(
            Bet.selections.any(BetSelection.status == BetStatus.LOST.value),
            ~Bet.selections.any(BetSelection.status == BetStatus.PENDING.value)
        )
    ).all()
    return [bet_id for (bet_id,) in rows]


def settle_legacy_single_bets(db: Session, results: Dict[int, FixtureResult], now: datetime) -> List[Dict[str, Any]]:
    """Single bets stored before selections had their own rows."""
    bets = db.query(Bet).filter(
        Bet.fixture_id.in_(list(results)),
        Bet.bet_type == BetType.SINGLE.value,
        Bet.status == BetStatus.PENDING.value,
        ~Bet.selections.any()
    ).all()

    settled = []
    for bet in bets:
        code = selection_code_for(bet.market, bet.selection, None)
        won = _leg_won(code, results[bet.fixture_id])
        status = BetStatus.WON.value if won else BetStatus.LOST.value
        payout = settlement_payout(bet.stake, bet.odds, won)
        if not transition_bet(db, bet.id, status, payout, now):
            continue
        if payout > 0:
            credit_points(db, bet.user_id, payout)
        db.commit()
        settled.append({"bet_id": bet.id, "user_id": bet.user_id, "status": status, "payout": payout,
                        "bet_type": bet.bet_type})
    return settled


async def settle_competition(
    db: Session,
    api: FootballAPI,
    context: str,
    job_name: Optional[str] = None
) -> Dict[str, Any]:
    started = time.monotonic()
    competition = get_competition(context)
    now = datetime.utcnow()

    fixtures = await fetch_finished_fixtures(api, competition)
    results = record_results(db, fixtures)
    logger.info(f"Processing {competition['label']} results - found {len(results)} finished fixtures")

    if not results:
        if job_name:
            unschedule(db, job_name)
        return {
            "ok": True,
            "updated": 0,
            "message": "No finished fixtures found to process",
            "timing": {"totalMs": round((time.monotonic() - started) * 1000)},
        }

    legs = settle_selections(db, results)
    bet_ids = set(legs["bet_ids"]) | set(unresolved_bet_ids(db))
    settled = [r for r in (resolve_bet(db, bet_id, now) for bet_id in sorted(bet_ids)) if r]
    settled.extend(settle_legacy_single_bets(db, results, now))

    if job_name:
        unschedule(db, job_name)

    singles = [s for s in settled if s["bet_type"] == BetType.SINGLE.value]
    combos = [s for s in settled if s["bet_type"] == BetType.COMBO.value]
    credited = round(sum(s["payout"] for s in settled), 2)
    elapsed = round((time.monotonic() - started) * 1000)

    logger.info(
        f"{competition['label']} settlement done: {len(singles)} single bets, "
        f"{legs['selections']} selections, {len(combos)} combo bets, {credited} points credited"
    )

    return {
        "ok": True,
        "updated": len(singles) + legs["selections"],
        "singleBets": len(singles),
        "selections": legs["selections"],
        "comboBets": len(combos),
        "matchResults": len(results),
        "won": sum(1 for s in settled if s["status"] == BetStatus.WON.value),
        "lost": sum(1 for s in settled if s["status"] == BetStatus.LOST.value),
        "pointsCredited": credited,
        "timing": {"totalMs": elapsed},
        "message": f"Successfully processed {len(settled)} bets and {len(results)} match results",
    }
