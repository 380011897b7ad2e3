"""
Scheduled automation jobs
- Customer status sweep, daily at 02:00
- Unassigned task rebalance, every 4 hours
- Data maintenance, Sunday at 03:00

Each job runs a rule function against the db handle and the current time.
A job never raises: failures are logged and the next run starts clean.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Callable, Awaitable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from crm_backend.config import SCHEDULER_TIMEZONE
from crm_backend.services.customer_lifecycle import evaluate_automated_transitions
from crm_backend.services.task_balancer import rebalance_unassigned_tasks
from crm_backend.services.maintenance import perform_data_maintenance

logger = logging.getLogger("scheduler")

# job id -> rule function(db, now)
JOBS: Dict[str, Callable[..., Awaitable[dict]]] = {
    "status-sweep": evaluate_automated_transitions,
    "task-rebalance": rebalance_unassigned_tasks,
    "maintenance": perform_data_maintenance,
}


class UnknownJobError(KeyError):
    pass


class TaskScheduler:
    """Owns the APScheduler instance and the automation jobs"""

    def __init__(self, db, timezone_name: str = SCHEDULER_TIMEZONE):
        self.db = db
        self.scheduler = AsyncIOScheduler(timezone=timezone_name)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Register every job and start the scheduler"""
        self.scheduler.add_job(
            self._run_job,
            CronTrigger(hour=2, minute=0),
            args=["status-sweep"],
            id="status-sweep",
            name="Customer status sweep",
            replace_existing=True
        )

        self.scheduler.add_job(
            self._run_job,
            CronTrigger(hour="*/4", minute=0),
            args=["task-rebalance"],
            id="task-rebalance",
            name="Unassigned task rebalance",
            replace_existing=True
        )

        self.scheduler.add_job(
            self._run_job,
            CronTrigger(day_of_week="sun", hour=3, minute=0),
            args=["maintenance"],
            id="maintenance",
            name="Data maintenance",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with jobs: {sorted(JOBS)}")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    async def _run_job(self, job_id: str):
        try:
            await self.run_now(job_id)
        except Exception as e:
            logger.error(f"[SCHEDULER] Job {job_id} failed: {e}")

    async def run_now(self, job_id: str) -> dict:
        """Run one rule immediately and return its summary"""
        if job_id not in JOBS:
            raise UnknownJobError(job_id)
        logger.info(f"[SCHEDULER] Running {job_id}")
        return await JOBS[job_id](self.db, datetime.now(timezone.utc))
