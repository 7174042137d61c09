"""Notification Routes - external trigger for the appointment reminder batch.
Called by an external scheduler with the shared X-API-Key secret; the in-process
APScheduler job runs the same batch.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
import logging

from job_runner import build_reminder_job, run_appointment_reminders
from middleware import require_api_key
from services.reminder_job import ReminderBatchJob, ReminderQueryError

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
    dependencies=[Depends(require_api_key)],
)


def get_reminder_job(request: Request) -> ReminderBatchJob:
    job = getattr(request.app.state, "reminder_job", None)
    if job is None:
        job = build_reminder_job()
        request.app.state.reminder_job = job
    return job


@router.post("/send-reminders")
async def send_reminders(job: ReminderBatchJob = Depends(get_reminder_job)):
    """Run one reminder batch. 200 with counts even when every item failed."""
    try:
        result = await run_appointment_reminders(job)
    except ReminderQueryError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"message": "Internal server error", "code": "INTERNAL_ERROR"}},
        )
    return {"data": {"sent": result["sent"], "failed": result["failed"]}}
