from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config import ADSENSE_CLIENT_ID, COMPETITIONS, GA_MEASUREMENT_ID
from app.db import get_db
from app.services import settings
from app.services.capabilities import Caller, require_privileged
from app.services.monitoring import CallMonitor, get_monitor

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    return {
        "status": "ok",
        "message": "Jambol API is running",
    }


@router.get("/config/public")
def public_config(db: Session = Depends(get_db)):
    """Client-side configuration safe to expose to the browser."""
    return {
        "ga_measurement_id": GA_MEASUREMENT_ID,
        "adsense_client_id": ADSENSE_CLIENT_ID,
        "live_matches_enabled": settings.live_matches_enabled(db),
        "maintenance_mode": settings.maintenance_mode(db),
        "competitions": {context: settings.competition_enabled(db, context) for context in COMPETITIONS},
    }


@router.get("/monitoring")
def monitoring_snapshot(
    caller: Caller = Depends(require_privileged),
    monitor: CallMonitor = Depends(get_monitor)
):
    return monitor.snapshot()
