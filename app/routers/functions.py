"""
Edge-function endpoints under /functions/v1.

Every function answers OPTIONS with an empty 200 and never lets an exception
escape: failures become a JSON `{"error": ...}` body, or PayPal's plain-text
contract for the IPN handler.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from app import config
from app.db import get_db
from app.errors import ForbiddenError, JambolError, ValidationError
from app.services import leagues as league_service
from app.services.capabilities import (
    Caller, LEAGUE_ADMIN, SERVICE, SUPERADMIN, USER, require, require_internal,
    require_privileged, require_user
)
from app.services.football_api import FootballAPI, get_football_api
from app.services.monitoring import CallMonitor, get_monitor
from app.services.odds_cache import refresh_competition
from app.services.payments import IPNVerifier, get_ipn_verifier, handle_ipn
from app.services.settlement import settle_competition
from app.utils.logging import request_logger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["functions"])


def key_info() -> Dict[str, Any]:
    """Service-key diagnostics for the secure wrappers; never the key itself."""
    key = config.SERVICE_ROLE_KEY
    return {
        "present": bool(key),
        "prefix": key[:3] if key else "none",
        "isLegacyJWT": bool(key) and key.startswith("eyJ"),
        "length": len(key) if key else 0,
    }


async def json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _job_name(body: Dict[str, Any]) -> Optional[str]:
    return body.get("job_name") or body.get("jobName")


def _elapsed_ms(started: float) -> int:
    return round((time.monotonic() - started) * 1000)


async def invoke(
    name: str,
    monitor: CallMonitor,
    work: Callable[[], Awaitable[Any]]
) -> Any:
    started = time.monotonic()
    try:
        result = await work()
    except JambolError as e:
        request_logger.log_function(name, _elapsed_ms(started), False, {"error": e.message})
        monitor.record(name, ok=False, duration_ms=_elapsed_ms(started))
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Exception as e:
        logger.exception(f"{name} failed")
        monitor.record(name, ok=False, duration_ms=_elapsed_ms(started))
        return JSONResponse(status_code=500, content={"error": str(e)})

    request_logger.log_function(name, _elapsed_ms(started), True)
    monitor.record(name, ok=True, duration_ms=_elapsed_ms(started))
    return result


async def secure_run(
    name: str,
    monitor: CallMonitor,
    work: Callable[[], Awaitable[Any]]
) -> JSONResponse:
    """Run a privileged operation and wrap its answer with key diagnostics and timing."""
    started = time.monotonic()
    info = key_info()
    try:
        data = await work()
    except JambolError as e:
        total = _elapsed_ms(started)
        request_logger.log_function(name, total, False, {"error": e.message})
        monitor.record(name, ok=False, duration_ms=total)
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.message, "keyInfo": info, "timing": {"totalMs": total}, "statusCode": e.status_code},
        )
    except Exception as e:
        total = _elapsed_ms(started)
        logger.exception(f"{name} failed")
        monitor.record(name, ok=False, duration_ms=total)
        return JSONResponse(
            status_code=500,
            content={"error": str(e), "keyInfo": info, "timing": {"totalMs": total}, "statusCode": 500},
        )

    total = _elapsed_ms(started)
    request_logger.log_function(name, total, True)
    monitor.record(name, ok=True, duration_ms=total)
    return JSONResponse(content={
        "ok": True,
        "data": data,
        "keyInfo": info,
        "timing": {"functionMs": total, "totalMs": _elapsed_ms(started)},
    })


@router.options("/{name}")
def preflight(name: str):
    return Response(status_code=200)


# Cache updaters (internal secret only)

@router.post("/update-football-cache")
async def update_football_cache(
    caller: Caller = Depends(require_internal),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await invoke("update-football-cache", monitor, lambda: refresh_competition(db, api, "leagues"))


@router.post("/update-coparey-cache")
async def update_coparey_cache(
    caller: Caller = Depends(require_internal),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await invoke("update-coparey-cache", monitor, lambda: refresh_competition(db, api, "coparey"))


@router.post("/update-selecciones-cache")
async def update_selecciones_cache(
    caller: Caller = Depends(require_internal),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await invoke("update-selecciones-cache", monitor, lambda: refresh_competition(db, api, "selecciones"))


# Settlement processors (internal secret only)

async def _process(name: str, context: str, request: Request, db: Session, api: FootballAPI, monitor: CallMonitor):
    body = await json_body(request)
    return await invoke(name, monitor, lambda: settle_competition(db, api, context, job_name=_job_name(body)))


@router.post("/process-matchday-results")
async def process_matchday_results(
    request: Request,
    caller: Caller = Depends(require_internal),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await _process("process-matchday-results", "leagues", request, db, api, monitor)


@router.post("/process-coparey-results")
async def process_coparey_results(
    request: Request,
    caller: Caller = Depends(require_internal),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await _process("process-coparey-results", "coparey", request, db, api, monitor)


@router.post("/process-selecciones-results")
async def process_selecciones_results(
    request: Request,
    caller: Caller = Depends(require_internal),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await _process("process-selecciones-results", "selecciones", request, db, api, monitor)


# Secure wrappers (internal secret, service key or superadmin)

@router.post("/secure-run-update-football-cache")
async def secure_run_update_football_cache(
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await secure_run(
        "secure-run-update-football-cache", monitor, lambda: refresh_competition(db, api, "leagues")
    )


@router.post("/secure-run-update-coparey-cache")
async def secure_run_update_coparey_cache(
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await secure_run(
        "secure-run-update-coparey-cache", monitor, lambda: refresh_competition(db, api, "coparey")
    )


@router.post("/secure-run-update-selecciones-cache")
async def secure_run_update_selecciones_cache(
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await secure_run(
        "secure-run-update-selecciones-cache", monitor, lambda: refresh_competition(db, api, "selecciones")
    )


async def _secure_process(
    name: str, context: str, request: Request, db: Session, api: FootballAPI, monitor: CallMonitor
):
    body = await json_body(request)
    return await secure_run(name, monitor, lambda: settle_competition(db, api, context, job_name=_job_name(body)))


@router.post("/secure-run-process-matchday-results")
async def secure_run_process_matchday_results(
    request: Request,
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await _secure_process("secure-run-process-matchday-results", "leagues", request, db, api, monitor)


@router.post("/secure-run-process-coparey-results")
async def secure_run_process_coparey_results(
    request: Request,
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await _secure_process("secure-run-process-coparey-results", "coparey", request, db, api, monitor)


@router.post("/secure-run-process-selecciones-results")
async def secure_run_process_selecciones_results(
    request: Request,
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db),
    api: FootballAPI = Depends(get_football_api),
    monitor: CallMonitor = Depends(get_monitor)
):
    return await _secure_process(
        "secure-run-process-selecciones-results", "selecciones", request, db, api, monitor
    )


# League and payment functions

@router.post("/leave-league")
async def leave_league(
    request: Request,
    caller: Caller = Depends(require(USER, SERVICE, SUPERADMIN)),
    db: Session = Depends(get_db),
    monitor: CallMonitor = Depends(get_monitor)
):
    body = await json_body(request)
    user_id = body.get("user_id")

    async def work():
        if not user_id:
            raise ValidationError("user_id is required")
        if not caller.has(SERVICE, SUPERADMIN) and caller.user_id != user_id:
            raise ForbiddenError("You can only leave your own league")
        return league_service.leave_league(db, str(user_id))

    return await invoke("leave-league", monitor, work)


@router.post("/upgrade-league-to-premium")
async def upgrade_league_to_premium(
    caller: Caller = Depends(require_user),
    db: Session = Depends(get_db),
    monitor: CallMonitor = Depends(get_monitor)
):
    async def work():
        return league_service.upgrade_to_premium(db, caller.profile)

    return await invoke("upgrade-league-to-premium", monitor, work)


@router.post("/admin-reset-budgets")
async def admin_reset_budgets(
    request: Request,
    caller: Caller = Depends(require(SERVICE, SUPERADMIN, LEAGUE_ADMIN)),
    db: Session = Depends(get_db),
    monitor: CallMonitor = Depends(get_monitor)
):
    body = await json_body(request)
    league_id = body.get("league_id")

    async def work():
        if not caller.has(SERVICE, SUPERADMIN):
            # League admins may only close the week of their own league.
            if not (body.get("manual_week_reset") and body.get("force")) or not league_id \
                    or caller.profile.league_id != int(league_id):
                raise ForbiddenError("League administrators can only reset their own league")

        if body.get("manual_week_reset") and body.get("force"):
            result = league_service.reset_week(db, int(league_id) if league_id else None)
        elif body.get("recalculate"):
            updated = league_service.recalculate_points(db)
            result = {"ok": True, "message": "Points recalculated successfully", "profiles": updated}
        else:
            updated = league_service.reset_budgets(db)
            result = {"ok": True, "message": "All weekly budgets reset to 1000", "profiles": updated}
        return {**result, "keyInfo": key_info()}

    return await invoke("admin-reset-budgets", monitor, work)


@router.post("/paypal-ipn-handler")
async def paypal_ipn_handler(
    request: Request,
    db: Session = Depends(get_db),
    verifier: IPNVerifier = Depends(get_ipn_verifier),
    monitor: CallMonitor = Depends(get_monitor)
):
    started = time.monotonic()
    raw = (await request.body()).decode("utf-8", errors="replace")
    form = dict(parse_qsl(raw, keep_blank_values=True))

    try:
        status_code, text = await handle_ipn(db, form, verifier)
    except Exception as e:
        logger.exception("PayPal IPN handler error")
        monitor.record("paypal-ipn-handler", ok=False, duration_ms=_elapsed_ms(started))
        return JSONResponse(status_code=500, content={"error": str(e)})

    monitor.record("paypal-ipn-handler", ok=status_code < 400, duration_ms=_elapsed_ms(started))
    return PlainTextResponse(text, status_code=status_code)
