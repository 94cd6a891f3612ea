"""
Call monitoring.

Counts invocations per function name for the admin monitoring view. The
monitor is created by the application and reached through `get_monitor`, so
every app instance (and every test client) has its own counters. Advisory
only: nothing reads it to make a decision.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request

logger = logging.getLogger(__name__)

Subscriber = Callable[[Dict[str, Any]], None]


class CallMonitor:
    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[str, Dict[str, Any]] = {}
        self._subscribers: List[Subscriber] = []
        self.started_at = datetime.utcnow()

    def record(self, name: str, ok: bool = True, duration_ms: Optional[float] = None) -> Dict[str, Any]:
        now = datetime.utcnow()
        with self._lock:
            entry = self._calls.setdefault(name, {"calls": 0, "failures": 0, "last_call": None, "last_ms": None})
            entry["calls"] += 1
            if not ok:
                entry["failures"] += 1
            entry["last_call"] = now.isoformat()
            entry["last_ms"] = duration_ms
            event = {"name": name, "ok": ok, "duration_ms": duration_ms, "at": now.isoformat()}
            subscribers = list(self._subscribers)

        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"Monitor subscriber failed: {e}")
        return event

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def count(self, name: str) -> int:
        with self._lock:
            return self._calls.get(name, {}).get("calls", 0)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            calls = {name: dict(entry) for name, entry in self._calls.items()}
        return {
            "since": self.started_at.isoformat(),
            "total_calls": sum(entry["calls"] for entry in calls.values()),
            "functions": calls,
        }

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
            self.started_at = datetime.utcnow()


def get_monitor(request: Request) -> CallMonitor:
    return request.app.state.monitor
