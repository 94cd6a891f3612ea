"""
Delayed-task queue.

Durable one-shot timers stored in `scheduled_tasks`. A task is identified by
its name, so scheduling the same name twice keeps a single row (moved to the
new run time). The worker claims due tasks with a guarded status update and
retries failures with a backoff, giving at-least-once delivery. A claim is a
lease: a task left running past TASK_LEASE_MINUTES (its worker died) is due again.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.config import TASK_LEASE_MINUTES, TASK_MAX_ATTEMPTS, TASK_POLL_SECONDS
from app.db import ScheduledTask, SessionLocal

logger = logging.getLogger(__name__)

TaskHandler = Callable[[Session, ScheduledTask], Awaitable[Dict[str, Any]]]

RETRY_BACKOFF_MINUTES = 15


def schedule_once(
    db: Session,
    name: str,
    task_type: str,
    run_at: datetime,
    payload: Optional[Dict[str, Any]] = None
) -> ScheduledTask:
    task = db.query(ScheduledTask).filter(ScheduledTask.name == name).first()
    if task is None:
        task = ScheduledTask(name=name, task_type=task_type, run_at=run_at, payload=payload or {})
        db.add(task)
    else:
        task.task_type = task_type
        task.run_at = run_at
        task.payload = payload or {}
        task.status = "scheduled"
        task.attempts = 0
        task.last_error = None
    db.commit()
    db.refresh(task)
    logger.info(f"Scheduled task {name} ({task_type}) at {run_at.isoformat()}")
    return task


def unschedule(db: Session, name: str) -> bool:
    """Drop a task that has not run yet; a finished task is left as history."""
    updated = db.query(ScheduledTask).filter(
        ScheduledTask.name == name,
        ScheduledTask.status.in_(["scheduled", "running"])
    ).update({"status": "cancelled", "updated_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()
    if updated:
        logger.info(f"Unscheduled task {name}")
    return bool(updated)


def lease_cutoff(now: Optional[datetime] = None) -> datetime:
    """Running tasks last touched before this have lost their claim."""
    return (now or datetime.utcnow()) - timedelta(minutes=TASK_LEASE_MINUTES)


def _claimable(stale_before: datetime):
    return or_(
        ScheduledTask.status == "scheduled",
        and_(ScheduledTask.status == "running", ScheduledTask.updated_at < stale_before)
    )


def due_tasks(db: Session, now: Optional[datetime] = None) -> List[ScheduledTask]:
    now = now or datetime.utcnow()
    return db.query(ScheduledTask).filter(
        _claimable(lease_cutoff(now)),
        ScheduledTask.run_at <= now
    ).order_by(ScheduledTask.run_at).all()


def claim(db: Session, task: ScheduledTask, stale_before: Optional[datetime] = None) -> bool:
    stale_before = stale_before or lease_cutoff()
    was_running = task.status == "running"
    claimed = db.query(ScheduledTask).filter(
        ScheduledTask.id == task.id,
        _claimable(stale_before)
    ).update(
        {"status": "running", "attempts": ScheduledTask.attempts + 1, "updated_at": datetime.utcnow()},
        synchronize_session=False
    )
    db.commit()
    db.refresh(task)
    if claimed and was_running:
        logger.warning(f"Reclaimed task {task.name} after its lease expired")
    return bool(claimed)


def complete(db: Session, task: ScheduledTask) -> None:
    db.query(ScheduledTask).filter(
        ScheduledTask.id == task.id,
        ScheduledTask.status == "running"
    ).update({"status": "done", "updated_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()


def fail(db: Session, task: ScheduledTask, error: str) -> None:
    db.refresh(task)
    task.last_error = error[:2000]
    if task.status != "cancelled":
        if task.attempts >= TASK_MAX_ATTEMPTS:
            task.status = "failed"
            logger.error(f"Task {task.name} failed permanently after {task.attempts} attempts: {error}")
        else:
            task.status = "scheduled"
            task.run_at = datetime.utcnow() + timedelta(minutes=RETRY_BACKOFF_MINUTES * task.attempts)
            logger.warning(f"Task {task.name} failed (attempt {task.attempts}), retrying at {task.run_at.isoformat()}")
    db.commit()


def list_tasks(db: Session, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    query = db.query(ScheduledTask)
    if status:
        query = query.filter(ScheduledTask.status == status)
    tasks = query.order_by(ScheduledTask.run_at.desc()).limit(limit).all()
    return [
        {
            "name": t.name,
            "task_type": t.task_type,
            "run_at": t.run_at.isoformat(),
            "status": t.status,
            "attempts": t.attempts,
            "last_error": t.last_error,
        }
        for t in tasks
    ]


async def run_due_tasks(
    db: Session,
    handlers: Dict[str, TaskHandler],
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    executed = []
    failed = []

    for task in due_tasks(db, now):
        if not claim(db, task, lease_cutoff(now)):
            continue

        if task.attempts > TASK_MAX_ATTEMPTS:
            fail(db, task, "Lease expired on the final attempt")
            failed.append(task.name)
            continue

        handler = handlers.get(task.task_type)
        if handler is None:
            fail(db, task, f"No handler registered for {task.task_type}")
            failed.append(task.name)
            continue

        try:
            await handler(db, task)
        except Exception as e:
            db.rollback()
            logger.exception(f"Task {task.name} raised")
            fail(db, task, str(e))
            failed.append(task.name)
        else:
            complete(db, task)
            executed.append(task.name)

    return {"executed": executed, "failed": failed}


class TaskWorker:
    """Background loop draining the delayed-task queue."""

    def __init__(self, handlers: Dict[str, TaskHandler], poll_seconds: int = TASK_POLL_SECONDS):
        self.handlers = handlers
        self.poll_seconds = poll_seconds
        self.is_running = False
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[datetime] = None
        self.runs = 0

    async def start(self):
        if self.is_running:
            return

        self.is_running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Task worker started")

    async def stop(self):
        self.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Task worker stopped")

    async def run_once(self) -> Dict[str, Any]:
        db = SessionLocal()
        try:
            result = await run_due_tasks(db, self.handlers)
        finally:
            db.close()
        self.last_run = datetime.utcnow()
        self.runs += 1
        return result

    async def _run(self):
        while self.is_running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in task worker loop: {e}")

            await asyncio.sleep(self.poll_seconds)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "poll_seconds": self.poll_seconds,
            "runs": self.runs,
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }
