"""
Appointment reminder batch job.

Selects appointments starting in [now + 23h, now + 25h) that are pending/confirmed and
not yet reminded, sends one reminder each through the NotificationDispatcher and stamps
`reminder_sent_at`. The 2h window is wider than the 15 minute run cadence, so a run that
fails before stamping is picked up by the next one; the stamp keeps runs from double sending.

Items are processed sequentially and independently: a missing organization/service or any
exception counts that appointment as failed and the loop moves on. Only a failed eligibility
query escapes `run()` (as ReminderQueryError).
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo
import logging

from models import (
    AuditAction,
    BatchResult,
    NotificationEvent,
    NotificationRequest,
    PlanType,
    ResolvedPlan,
)
from services.notification_service import NotificationDispatcher
from services.plan_registry import (
    PlanRegistryService,
    get_plan_limits,
    plan_registry as default_plan_registry,
    report_plan_fallback,
)
from services.scheduling_store import SchedulingStore
from utils.audit import create_audit_log
from utils.public_app_url import build_management_url, build_management_url_suffix

logger = logging.getLogger(__name__)

REMINDER_WINDOW_START_HOURS = 23
REMINDER_WINDOW_END_HOURS = 25
DATE_FORMAT = "%d/%m/%Y"
TIME_FORMAT = "%H:%M"
DEFAULT_TIMEZONE = "America/Sao_Paulo"


class ReminderQueryError(Exception):
    """The eligibility query failed before any appointment was processed."""
    pass


class ReminderContextError(LookupError):
    """Organization or service referenced by an appointment does not exist."""
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Mongo hands back naive datetimes that are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def reminder_window(now: datetime):
    return (
        now + timedelta(hours=REMINDER_WINDOW_START_HOURS),
        now + timedelta(hours=REMINDER_WINDOW_END_HOURS),
    )


def format_local(start: datetime, tz_name: Optional[str]):
    """(dd/mm/yyyy, HH:MM) of `start` in the organization's timezone."""
    local = _as_utc(start).astimezone(ZoneInfo(tz_name or DEFAULT_TIMEZONE))
    return local.strftime(DATE_FORMAT), local.strftime(TIME_FORMAT)


class ReminderBatchJob:
    def __init__(
        self,
        store: SchedulingStore,
        dispatcher: NotificationDispatcher,
        plan_registry: Optional[PlanRegistryService] = None,
        app_url: Optional[str] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.plan_registry = plan_registry or default_plan_registry
        self.app_url = app_url
        self.clock = clock

    async def run(self) -> BatchResult:
        """
        Process one batch.

        Returns:
            BatchResult with sent/failed counts

        Raises:
            ReminderQueryError: only if the eligibility query itself fails
        """
        window_start, window_end = reminder_window(self.clock())
        try:
            appointments = await self.store.find_eligible_reminders(window_start, window_end)
        except Exception as e:
            logger.error(f"Send reminders error: eligibility query failed: {e}")
            raise ReminderQueryError(str(e)) from e

        result = BatchResult()
        for appointment in appointments:
            appointment_id = appointment.get("id")
            try:
                await self._remind(appointment)
                result.sent += 1
            except Exception as e:
                result.failed += 1
                logger.error(f"Reminder failed: appointment_id={appointment_id} error={e}")
                await create_audit_log(
                    action=AuditAction.REMINDER_FAILED,
                    organization_id=appointment.get("organization_id"),
                    resource_type="appointment",
                    resource_id=appointment_id,
                    metadata={"error": str(e)[:500]},
                )

        logger.info(f"Reminders processed: sent={result.sent} failed={result.failed}")
        if appointments:
            await create_audit_log(
                action=AuditAction.REMINDER_BATCH_COMPLETED,
                resource_type="appointment",
                metadata={
                    "sent": result.sent,
                    "failed": result.failed,
                    "window_start": window_start.isoformat(),
                    "window_end": window_end.isoformat(),
                },
            )
        return result

    async def _remind(self, appointment: Dict[str, Any]) -> None:
        organization_id = appointment.get("organization_id")
        organization = await self.store.find_organization(organization_id)
        service = await self.store.find_service(appointment.get("service_id"))
        if not organization or not service:
            raise ReminderContextError(
                f"organization or service not found (organization_id={organization_id}, "
                f"service_id={appointment.get('service_id')})"
            )

        appointment_date, appointment_time = format_local(
            appointment["start_datetime"], organization.get("timezone")
        )
        plan = await self._resolve_plan(organization_id)

        slug = organization.get("slug") or ""
        token = appointment.get("management_token") or ""
        request = NotificationRequest(
            event=NotificationEvent.APPOINTMENT_REMINDER,
            organization_id=organization_id,
            recipient_phone=appointment.get("customer_phone"),
            recipient_email=appointment.get("customer_email"),
            locale="en" if appointment.get("language") == "en" else "pt-BR",
            data={
                "customer_name": appointment.get("customer_name") or "",
                "organization_name": organization.get("name") or "",
                "service_name": service.get("name") or "",
                "appointment_date": appointment_date,
                "appointment_time": appointment_time,
                "cancel_url": build_management_url(slug, token, "cancel", base_url=self.app_url),
                "reschedule_url": build_management_url(slug, token, "reschedule", base_url=self.app_url),
                "cancel_url_suffix": build_management_url_suffix(slug, token, "cancel"),
                "reschedule_url_suffix": build_management_url_suffix(slug, token, "reschedule"),
            },
            plan_type=plan.type.value,
        )

        # Awaited so the item settles before the stamp; dispatch itself never raises
        await self.dispatcher.dispatch(request)
        await self.store.mark_reminder_sent(appointment["id"], self.clock())

    async def _resolve_plan(self, organization_id: str) -> ResolvedPlan:
        subscription = await self.store.find_subscription(organization_id)
        if subscription is None:
            # No billing record yet: essential entitlements, nothing misconfigured
            return ResolvedPlan(type=PlanType.ESSENTIAL, limits=get_plan_limits(PlanType.ESSENTIAL))

        plan, fallback_applied = self.plan_registry.resolve_plan_with_fallback(subscription)
        if fallback_applied:
            await report_plan_fallback(organization_id, subscription, source="reminder_job", resource="reminder")
        return plan
