import logging
from typing import Any, Callable

from fastapi import APIRouter

from tracker.deps import CurrentUser, SchedulerDep
from tracker.jobs.scheduler import JobScheduler
from tracker.schemas import JobTriggerResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


async def _trigger(
    scheduler: JobScheduler, name: str, message: str, summarize: Callable[[Any], Any]
) -> JobTriggerResponse:
    run = await scheduler.run_once(name)
    if not run.ok:
        return JobTriggerResponse(message=f"Job {name} failed: {run.error}", status="failed")
    return JobTriggerResponse(message=message, result=summarize(run.result))


@router.post("/trigger/deadlines", response_model=JobTriggerResponse)
async def trigger_deadline_check(user_email: CurrentUser, scheduler: SchedulerDep):
    logger.info("Manual trigger: Deadline check by %s", user_email)
    return await _trigger(
        scheduler,
        "deadline-reminders",
        "Deadline check triggered successfully",
        lambda reminders: {"reminders": len(reminders)},
    )


@router.post("/trigger/overdue", response_model=JobTriggerResponse)
async def trigger_overdue_check(user_email: CurrentUser, scheduler: SchedulerDep):
    logger.info("Manual trigger: Overdue check by %s", user_email)
    return await _trigger(
        scheduler, "overdue-check", "Overdue check triggered successfully", lambda ids: {"overdue": len(ids)}
    )


@router.post("/trigger/daily-report", response_model=JobTriggerResponse)
async def trigger_daily_report(user_email: CurrentUser, scheduler: SchedulerDep):
    logger.info("Manual trigger: Daily report by %s", user_email)
    return await _trigger(
        scheduler,
        "daily-report",
        "Daily report generated successfully",
        lambda report: report.model_dump(mode="json", by_alias=True),
    )


@router.post("/trigger/cleanup", response_model=JobTriggerResponse)
async def trigger_cleanup(user_email: CurrentUser, scheduler: SchedulerDep):
    logger.info("Manual trigger: Cleanup by %s", user_email)
    return await _trigger(
        scheduler, "cleanup", "Cleanup job triggered successfully", lambda eligible: {"eligible": eligible}
    )


@router.get("/status")
async def get_jobs_status(user_email: CurrentUser, scheduler: SchedulerDep):
    return {"schedulerEnabled": scheduler.running, "jobs": scheduler.status()}
