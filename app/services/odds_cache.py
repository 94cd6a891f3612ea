"""
Odds cache refresh.

Fetches the next fixtures of a competition context, attaches bookmaker odds
per fixture and overwrites the context's cache row with the combined payload.
The row it replaces is kept as the "previous" snapshot. After a successful
write a one-shot settlement task is queued for five hours after the last
kickoff.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import COMPETITIONS, SETTLEMENT_DELAY_HOURS, SELECCIONES_DAYS_AHEAD
from app.db import OddsCache, MatchResult
from app.errors import NotFoundError, UpstreamError
from app.services.football_api import FootballAPI
from app.services.settings import enabled_national_teams
from app.services.task_queue import schedule_once
from app.utils.dates import parse_iso_utc, season_for, settlement_time, unix_seconds

logger = logging.getLogger(__name__)


def get_competition(context: str) -> Dict[str, Any]:
    competition = COMPETITIONS.get(context)
    if competition is None:
        raise NotFoundError(f"Unknown competition context: {context}")
    return competition


def _is_world_cup_qualification(league_name: Optional[str]) -> bool:
    name = (league_name or "").lower()
    return "world cup" in name and "qualification" in name


def _with_league(item: Dict[str, Any], league_id: int, league_name: str) -> Dict[str, Any]:
    teams = dict(item.get("teams") or {})
    teams["league_id"] = league_id
    teams["league_name"] = league_name
    return {**item, "teams": teams}


async def _league_fixtures(api: FootballAPI, competition: Dict[str, Any], season: int) -> List[Dict[str, Any]]:
    fixtures = []
    for league_id, meta in competition["leagues"].items():
        items = await api.upcoming_fixtures(league_id, season, meta["next"])
        logger.info(f"Found {len(items)} upcoming fixtures for {meta['name']}")
        fixtures.extend(
            _with_league(item, league_id, meta["name"])
            for item in items
            if (item.get("fixture") or {}).get("id")
        )
    return fixtures


async def _national_team_fixtures(db: Session, api: FootballAPI, now: datetime) -> List[Dict[str, Any]]:
    enabled = set(enabled_national_teams(db))
    if not enabled:
        logger.info("No national teams enabled, skipping Selecciones fixtures")
        return []

    fixtures = []
    for offset in range(SELECCIONES_DAYS_AHEAD):
        day = (now.date() + timedelta(days=offset)).isoformat()
        for item in await api.fixtures_by_date(day):
            league = item.get("league") or {}
            if not _is_world_cup_qualification(league.get("name")):
                continue
            teams = item.get("teams") or {}
            home = (teams.get("home") or {}).get("name")
            away = (teams.get("away") or {}).get("name")
            if home in enabled or away in enabled:
                fixtures.append(_with_league(item, league.get("id"), league.get("name") or "World Cup - Qualification"))
    return fixtures


async def _attach_odds(api: FootballAPI, fixtures: List[Dict[str, Any]]) -> Dict[str, Any]:
    entries = []
    with_odds = 0

    for item in fixtures:
        fixture = item["fixture"]
        fixture_id = fixture["id"]
        try:
            odds = await api.fixture_odds(fixture_id)
        except UpstreamError as e:
            logger.warning(f"Could not fetch odds for fixture {fixture_id}: {e.message}")
            odds = []

        if odds:
            with_odds += 1
            for entry in odds:
                entry_fixture = dict(entry.get("fixture") or {})
                entry_fixture["id"] = fixture_id
                entry_fixture["date"] = fixture.get("date") or entry_fixture.get("date")
                entries.append({**entry, "fixture": entry_fixture, "teams": item["teams"]})
        else:
            entries.append({
                "fixture": {"id": fixture_id, "date": fixture.get("date")},
                "teams": item["teams"],
                "league": item.get("league"),
                "bookmakers": [],
            })

    return {"entries": entries, "with_odds": with_odds, "placeholders": len(fixtures) - with_odds}


def store_snapshot(db: Session, competition: Dict[str, Any], entries: List[Dict[str, Any]], now: datetime) -> OddsCache:
    label = competition["label"]
    current = db.get(OddsCache, competition["current_row"])

    if current is not None and current.data:
        previous = db.get(OddsCache, competition["previous_row"])
        if previous is None:
            previous = OddsCache(id=competition["previous_row"])
            db.add(previous)
        previous.data = current.data
        previous.info = f"{label} - previous odds snapshot"
        previous.last_updated = current.last_updated

    if current is None:
        current = OddsCache(id=competition["current_row"])
        db.add(current)
    current.data = {"response": entries}
    current.info = f"{label} - current odds snapshot"
    current.last_updated = now

    db.commit()
    db.refresh(current)
    return current


def upsert_kickoffs(db: Session, fixtures: List[Dict[str, Any]]) -> int:
    """Record kickoff times and team names; goals already stored are left alone."""
    count = 0
    for item in fixtures:
        fixture = item.get("fixture") or {}
        teams = item.get("teams") or {}
        kickoff = parse_iso_utc(fixture.get("date"))
        if not fixture.get("id") or kickoff is None:
            continue

        home = (teams.get("home") or {}).get("name")
        away = (teams.get("away") or {}).get("name")
        row = db.query(MatchResult).filter(MatchResult.fixture_id == fixture["id"]).first()
        if row is None:
            row = MatchResult(fixture_id=fixture["id"])
            db.add(row)
        row.kickoff_time = kickoff
        row.home_team = home
        row.away_team = away
        row.match_name = f"{home} vs {away}"
        row.league_id = teams.get("league_id")
        count += 1

    db.commit()
    return count


def schedule_settlement(db: Session, context: str, fixtures: List[Dict[str, Any]]) -> Optional[str]:
    competition = get_competition(context)
    kickoffs = [parse_iso_utc((item.get("fixture") or {}).get("date")) for item in fixtures]
    run_at = settlement_time(kickoffs, SETTLEMENT_DELAY_HOURS)
    if run_at is None:
        return None

    job_name = f"{competition['process_function']}-{unix_seconds(run_at)}"
    schedule_once(
        db,
        job_name,
        f"settle:{context}",
        run_at,
        {
            "context": context,
            "target_time": run_at.isoformat(),
            "reason": f"auto-scheduled by {context} cache refresh",
        },
    )
    return job_name


async def refresh_competition(
    db: Session,
    api: FootballAPI,
    context: str,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Refresh one context's odds cache.

    A failed fixtures call propagates and leaves the cache as it was. A failed
    odds call for a single fixture only turns that fixture into a placeholder.
    """
    competition = get_competition(context)
    now = now or datetime.utcnow()

    if context == "selecciones":
        fixtures = await _national_team_fixtures(db, api, now)
    else:
        fixtures = await _league_fixtures(api, competition, season_for(now))

    if not fixtures:
        logger.info(f"No upcoming {competition['label']} fixtures, cache not updated")
        return {"message": "No upcoming fixtures to fetch odds for.", "fixtures_found": 0}

    odds = await _attach_odds(api, fixtures)
    store_snapshot(db, competition, odds["entries"], now)
    kickoffs = upsert_kickoffs(db, fixtures)
    job_name = schedule_settlement(db, context, fixtures)

    logger.info(
        f"{competition['label']} cache updated: {len(fixtures)} fixtures, "
        f"{odds['with_odds']} with odds, {odds['placeholders']} placeholders"
    )

    return {
        "message": "Cache updated successfully!",
        "context": context,
        "leagues_processed": len(competition["leagues"]) if context != "selecciones" else None,
        "fixtures_found": len(fixtures),
        "odds_fetched": len(odds["entries"]),
        "placeholders": odds["placeholders"],
        "kickoffs_recorded": kickoffs,
        "settlement_job": job_name,
    }


def read_snapshot(db: Session, context: str, previous: bool = False) -> Dict[str, Any]:
    competition = get_competition(context)
    row_id = competition["previous_row"] if previous else competition["current_row"]
    row = db.get(OddsCache, row_id)
    if row is None:
        return {"context": context, "previous": previous, "data": {"response": []}, "last_updated": None}
    return {
        "context": context,
        "previous": previous,
        "data": row.data or {"response": []},
        "info": row.info,
        "last_updated": row.last_updated.isoformat() if row.last_updated else None,
    }
