"""
One-shot task scheduling using APScheduler.

schedule(delay, callback) returns a ScheduledTask handle that can be
cancelled. Owners that reschedule (fade/stop timers for playback) cancel
every outstanding handle first so timers never overlap.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from core.logging import get_logger

logger = get_logger(__name__)


class ScheduledTask:
    """Cancelable handle for a job scheduled once"""

    def __init__(self, scheduler: "TaskScheduler", job_id: str, name: str, run_at: datetime):
        self._scheduler = scheduler
        self.job_id = job_id
        self.name = name
        self.run_at = run_at
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        """Cancel the job. Returns False if it already fired or was cancelled."""
        if not self.pending:
            return False
        self.cancelled = True
        return self._scheduler._remove(self)


class TaskScheduler:
    """Owns an AsyncIOScheduler and the handles it has handed out."""

    def __init__(self, timezone_name: str = "UTC"):
        self._scheduler = AsyncIOScheduler(timezone=timezone_name)
        self._tasks: Dict[str, ScheduledTask] = {}
        # Tracked here: AsyncIOScheduler may finish shutting down on a later loop iteration
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler if not already running. Needs a running event loop."""
        if self._running:
            return
        self._scheduler.start()
        self._running = True
        logger.info("[Scheduler] Started")

    def shutdown(self):
        """Cancel outstanding tasks and stop the scheduler."""
        self.cancel_all()
        if not self._running:
            return
        self._running = False
        self._scheduler.shutdown(wait=False)
        logger.info("[Scheduler] Shutdown")

    def schedule(self, delay: float, callback: Callable, *args: Any, name: Optional[str] = None) -> ScheduledTask:
        """
        Run callback once after delay seconds.

        Args:
            delay: Seconds from now
            callback: Sync function or coroutine function
            *args: Positional arguments for the callback
            name: Label used in logs

        Returns:
            Handle that can cancel the job before it fires
        """
        job_id = uuid.uuid4().hex
        run_at = datetime.now(timezone.utc) + timedelta(seconds=max(delay, 0.0))
        task = ScheduledTask(self, job_id, name or getattr(callback, "__name__", "task"), run_at)
        self._tasks[job_id] = task

        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=run_at),
            id=job_id,
            args=[job_id, callback, args],
            misfire_grace_time=None,
        )
        logger.debug(f"[Scheduler] Scheduled {task.name} in {delay:.2f}s", job_id=job_id)
        return task

    async def _fire(self, job_id: str, callback: Callable, args: tuple):
        task = self._tasks.pop(job_id, None)
        if task is None or task.cancelled or not self._running:
            return
        task.fired = True
        result = callback(*args)
        if hasattr(result, "__await__"):
            await result

    def _remove(self, task: ScheduledTask) -> bool:
        self._tasks.pop(task.job_id, None)
        try:
            self._scheduler.remove_job(task.job_id)
            logger.debug(f"[Scheduler] Cancelled {task.name}", job_id=task.job_id)
            return True
        except JobLookupError:
            return False

    def cancel_all(self) -> int:
        """Cancel every pending task. Returns how many were cancelled."""
        cancelled = sum(1 for task in list(self._tasks.values()) if task.cancel())
        return cancelled

    def pending_count(self) -> int:
        return len(self._tasks)
