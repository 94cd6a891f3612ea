"""
Background jobs.

The only long-running job is the delayed-task worker. Its handler registry
maps task types to coroutines; settlement tasks are named `settle:<context>`.
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.config import COMPETITIONS
from app.db import ScheduledTask
from app.services.football_api import get_football_api
from app.services.settlement import settle_competition
from app.services.task_queue import TaskWorker, TaskHandler

logger = logging.getLogger(__name__)


def make_settlement_handler(context: str) -> TaskHandler:
    async def handler(db: Session, task: ScheduledTask) -> Dict[str, Any]:
        logger.info(f"Running scheduled settlement {task.name} for {context}")
        # The worker marks the task done itself, so no job name is passed on.
        return await settle_competition(db, get_football_api(), context)

    return handler


TASK_HANDLERS: Dict[str, TaskHandler] = {
    f"settle:{context}": make_settlement_handler(context) for context in COMPETITIONS
}

task_worker = TaskWorker(TASK_HANDLERS)


async def start_all_jobs():
    await task_worker.start()


async def stop_all_jobs():
    await task_worker.stop()


def get_jobs_status() -> Dict[str, Any]:
    return {
        "task_worker": task_worker.status(),
        "handlers": sorted(TASK_HANDLERS),
    }
