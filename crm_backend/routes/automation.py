"""
CRM - Routes Automation
Admin trigger for the scheduled jobs (status sweep, task rebalance, maintenance).
"""

import logging

from fastapi import APIRouter, Depends, Request

from crm_backend.config import get_db
from crm_backend.models.auth import UserRole
from crm_backend.scheduler_service import JOBS, TaskScheduler
from crm_backend.models.activity import ActivityAction, EntityType
from crm_backend.services.activity_logger import log_activity
from crm_backend.services.permissions import AuthContext, require_roles
from crm_backend.routes.common import not_found

logger = logging.getLogger("automation")

router = APIRouter(prefix="/automation", tags=["Automation"])

admin_only = require_roles(UserRole.ADMIN)


@router.get("/jobs")
async def list_jobs(request: Request, auth: AuthContext = Depends(admin_only)):
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "success": True,
        "data": {
            "jobs": sorted(JOBS),
            "schedulerRunning": bool(scheduler and scheduler.running),
        }
    }


@router.post("/run/{job}")
async def run_job(job: str, auth: AuthContext = Depends(admin_only), db=Depends(get_db)):
    """Run one automation job now and return its summary."""
    if job not in JOBS:
        not_found("Job", f"Unknown job '{job}'. Available: {sorted(JOBS)}")

    logger.info(f"[AUTOMATION] {auth.email} triggered {job}")
    summary = await TaskScheduler(db).run_now(job)

    await log_activity(db, auth.as_actor(), ActivityAction.RUN_JOB, EntityType.AUTOMATION, job, job, summary)
    return {"success": True, "data": summary}
