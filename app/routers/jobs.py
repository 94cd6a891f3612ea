"""
Background jobs router for monitoring and driving the delayed-task worker.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db import get_db
from app.services.background_jobs import TASK_HANDLERS, get_jobs_status, task_worker
from app.services.capabilities import Caller, require_privileged
from app.services.task_queue import list_tasks, run_due_tasks

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobStatusResponse(BaseModel):
    task_worker: Dict[str, Any]
    handlers: List[str]


@router.get("/status", response_model=JobStatusResponse)
def get_status():
    """Get status of the task worker."""
    return get_jobs_status()


@router.get("/tasks")
def get_tasks(
    status: Optional[str] = None,
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db)
):
    return {"tasks": list_tasks(db, status=status)}


@router.post("/run-due")
async def run_due(
    caller: Caller = Depends(require_privileged),
    db: Session = Depends(get_db)
):
    """Run every task whose time has come, without waiting for the worker's next poll."""
    result = await run_due_tasks(db, TASK_HANDLERS, now=datetime.utcnow())
    return {"message": "Due tasks processed", **result}


@router.post("/worker/start")
async def start_worker(caller: Caller = Depends(require_privileged)):
    await task_worker.start()
    return {"message": "Task worker started", "status": task_worker.status()}


@router.post("/worker/stop")
async def stop_worker(caller: Caller = Depends(require_privileged)):
    await task_worker.stop()
    return {"message": "Task worker stopped", "status": task_worker.status()}
