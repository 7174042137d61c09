"""
Shared job runner for scheduled background jobs.
Used by server (scheduler) and the HTTP trigger route.
Each run_* returns a dict with "message" and counts for the caller.
"""
import logging
from typing import Optional

from models import AuditAction
from services.email_service import EmailService
from services.notification_service import DispatchResult, NotificationDispatcher
from services.reminder_job import ReminderBatchJob
from services.scheduling_store import SchedulingStore
from services.whatsapp_service import WhatsAppService
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)


async def record_dispatch_outcome(result: DispatchResult) -> None:
    """Dispatcher observer: persist failed and skipped sends for operators."""
    if result.outcome == "sent":
        return
    action = AuditAction.NOTIFICATION_FAILED if result.outcome == "failed" else AuditAction.NOTIFICATION_SKIPPED
    await create_audit_log(
        action=action,
        organization_id=result.organization_id,
        resource_type="notification",
        metadata={
            "event": result.event.value,
            "channel": result.channel.value,
            "error": result.error_message,
            "missing_fields": result.missing_fields or None,
        },
    )


def build_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        email_service=EmailService.from_env(),
        whatsapp_service=WhatsAppService.from_env(),
        on_result=record_dispatch_outcome,
    )


def build_reminder_job(dispatcher: Optional[NotificationDispatcher] = None) -> ReminderBatchJob:
    return ReminderBatchJob(store=SchedulingStore(), dispatcher=dispatcher or build_dispatcher())


async def run_appointment_reminders(job: Optional[ReminderBatchJob] = None):
    try:
        job = job or build_reminder_job()
        result = await job.run()
        logger.info(f"Appointment reminders job completed: {result.sent} sent, {result.failed} failed")
        return {
            "message": f"Appointment reminders sent: {result.sent}, failed: {result.failed}",
            "sent": result.sent,
            "failed": result.failed,
        }
    except Exception as e:
        logger.error(f"Appointment reminders job failed: {e}")
        raise
