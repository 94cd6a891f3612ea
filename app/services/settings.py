"""
Betting settings and match availability.

Settings are generic key/value rows; every typed reader falls back to a
hardcoded default when the row is absent or unparseable.
"""

import json
import logging
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from app.config import DEFAULT_CUTOFF_MINUTES, COMPETITIONS
from app.db import BettingSetting, MatchAvailability
from app.utils.cache import settings_cache

logger = logging.getLogger(__name__)

CUTOFF_MINUTES = "betting_cutoff_minutes"
MAINTENANCE_MODE = "maintenance_mode"
DEVELOPER_MODE = "developer_mode"
ENABLED_NATIONAL_TEAMS = "selecciones_enabled_teams"
LIVE_MATCHES_ENABLED = "live_matches_enabled"


def get_setting(db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
    cache_key = f"setting:{key}"
    if settings_cache.contains(cache_key):
        value = settings_cache.get(cache_key)
    else:
        row = db.query(BettingSetting).filter(BettingSetting.setting_key == key).first()
        value = row.setting_value if row else None
        settings_cache.set(cache_key, value)
    return default if value is None else value


def set_setting(db: Session, key: str, value: str, description: Optional[str] = None) -> BettingSetting:
    row = db.query(BettingSetting).filter(BettingSetting.setting_key == key).first()
    if row is None:
        row = BettingSetting(setting_key=key, setting_value=value, description=description)
        db.add(row)
    else:
        row.setting_value = value
        row.updated_at = datetime.utcnow()
        if description is not None:
            row.description = description
    db.commit()
    db.refresh(row)
    settings_cache.invalidate(f"setting:{key}")
    logger.info(f"Setting {key} updated to {value!r}")
    return row


def list_settings(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(BettingSetting).order_by(BettingSetting.setting_key).all()
    return [
        {
            "setting_key": r.setting_key,
            "setting_value": r.setting_value,
            "description": r.description,
            "updated_at": r.updated_at.isoformat() if r.updated_at else None,
        }
        for r in rows
    ]


def get_bool(db: Session, key: str, default: bool = False) -> bool:
    value = get_setting(db, key)
    if value is None:
        return default
    return value.strip().lower() == "true"


def cutoff_minutes(db: Session) -> int:
    try:
        minutes = int(get_setting(db, CUTOFF_MINUTES, str(DEFAULT_CUTOFF_MINUTES)))
    except (TypeError, ValueError):
        return DEFAULT_CUTOFF_MINUTES
    return minutes if minutes > 0 else DEFAULT_CUTOFF_MINUTES


def maintenance_mode(db: Session) -> bool:
    return get_bool(db, MAINTENANCE_MODE, False)


def developer_mode(db: Session) -> bool:
    return get_bool(db, DEVELOPER_MODE, False)


def live_matches_enabled(db: Session) -> bool:
    return get_bool(db, LIVE_MATCHES_ENABLED, False)


def competition_enabled(db: Session, context: str) -> bool:
    competition = COMPETITIONS.get(context)
    if competition is None:
        return False
    if not competition["setting"]:
        return True
    return get_bool(db, competition["setting"], False)


def enabled_national_teams(db: Session) -> List[str]:
    raw = get_setting(db, ENABLED_NATIONAL_TEAMS)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {ENABLED_NATIONAL_TEAMS} setting")
        return []
    return [str(team) for team in parsed] if isinstance(parsed, list) else []


def set_availability(db: Session, league_id: Optional[int], day: date, enabled: bool) -> MatchAvailability:
    row = db.query(MatchAvailability).filter(
        MatchAvailability.league_id == league_id,
        MatchAvailability.date == day
    ).first()
    if row is None:
        row = MatchAvailability(league_id=league_id, date=day, is_live_betting_enabled=enabled)
        db.add(row)
    else:
        row.is_live_betting_enabled = enabled
    db.commit()
    db.refresh(row)
    return row


def availability_window(db: Session, league_id: Optional[int], start: date, end: date) -> List[Dict[str, Any]]:
    rows = db.query(MatchAvailability).filter(
        MatchAvailability.league_id == league_id,
        MatchAvailability.date >= start,
        MatchAvailability.date <= end
    ).order_by(MatchAvailability.date).all()
    return [{"date": r.date.isoformat(), "is_live_betting_enabled": r.is_live_betting_enabled} for r in rows]


def is_date_enabled(db: Session, league_id: Optional[int], day: date) -> bool:
    """A league row overrides the global row; with neither, betting is open."""
    scopes = [league_id, None] if league_id is not None else [None]
    for scope in scopes:
        row = db.query(MatchAvailability).filter(
            MatchAvailability.league_id == scope,
            MatchAvailability.date == day
        ).first()
        if row is not None:
            return row.is_live_betting_enabled
    return True
