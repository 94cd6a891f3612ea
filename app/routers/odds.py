from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import NotFoundError
from app.services import settings
from app.services.odds_cache import get_competition, read_snapshot

router = APIRouter(prefix="/odds", tags=["odds"])


@router.get("/{context}")
def get_cached_odds(
    context: str,
    previous: bool = False,
    db: Session = Depends(get_db)
):
    """Cached odds snapshot for a competition context; `previous` returns the one it replaced."""
    get_competition(context)
    if not settings.competition_enabled(db, context):
        raise NotFoundError(f"competition {context} not found or disabled")
    return read_snapshot(db, context, previous=previous)
