"""
Appointment Notification Dispatcher.
Single entry point for customer appointment notifications (WhatsApp or email).
Resolves the channel from the recipient's phone and the organization's plan,
builds the channel payload and calls the provider. Never raises to the caller:
every outcome comes back as a DispatchResult and is handed to the optional observer.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from models import NotificationChannel, NotificationEvent, NotificationRequest
from services.channel_resolver import ChannelResolver, channel_resolver as default_channel_resolver
from services.email_service import EmailService
from services.whatsapp_service import WhatsAppSendError, WhatsAppService
from services.whatsapp_templates import (
    CANCELLATION_TEMPLATE_NAME,
    CONFIRMATION_TEMPLATE_NAME,
    REMINDER_TEMPLATE_NAME,
    RESCHEDULE_TEMPLATE_NAME,
    TemplateComponents,
    build_cancellation_components,
    build_confirmation_components,
    build_reminder_components,
    build_reschedule_components,
)

logger = logging.getLogger(__name__)

EVENT_TO_TEMPLATE = {
    NotificationEvent.APPOINTMENT_CONFIRMED: CONFIRMATION_TEMPLATE_NAME,
    NotificationEvent.APPOINTMENT_CANCELLED: CANCELLATION_TEMPLATE_NAME,
    NotificationEvent.APPOINTMENT_RESCHEDULED: RESCHEDULE_TEMPLATE_NAME,
    NotificationEvent.APPOINTMENT_REMINDER: REMINDER_TEMPLATE_NAME,
}

LOCALE_TO_LANGUAGE_CODE = {
    "pt-BR": "pt_BR",
    "en": "en_US",
}
DEFAULT_LANGUAGE_CODE = "pt_BR"

RESCHEDULE_REQUIRED_FIELDS = ("old_date", "old_time", "new_date", "new_time")


@dataclass
class DispatchResult:
    outcome: str  # sent | skipped | failed
    channel: NotificationChannel
    event: NotificationEvent
    organization_id: str
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)


ResultObserver = Callable[[DispatchResult], Union[None, Awaitable[None]]]


def _field(data: Dict[str, str], key: str) -> str:
    return data.get(key) or ""


class NotificationDispatcher:
    """Routes NotificationRequests to WhatsApp or email and reports the outcome."""

    def __init__(
        self,
        email_service: EmailService,
        whatsapp_service: Optional[WhatsAppService] = None,
        channel_resolver: Optional[ChannelResolver] = None,
        on_result: Optional[ResultObserver] = None,
    ):
        self.email_service = email_service
        self.whatsapp_service = whatsapp_service
        self.channel_resolver = channel_resolver or default_channel_resolver
        self.on_result = on_result
        self._pending: Set[asyncio.Task] = set()

    def send(self, request: NotificationRequest) -> Optional[asyncio.Task]:
        """
        Fire-and-forget: schedule dispatch on the running loop and return immediately.

        Never raises. Called outside an event loop, nothing is scheduled: the failure
        is logged, reported to a synchronous observer and None is returned.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(
                "Notification dispatch skipped: no running event loop event=%s organization_id=%s",
                request.event.value, request.organization_id,
            )
            self._notify_observer_sync(DispatchResult(
                outcome="failed",
                channel=self.channel_resolver.resolve(request.recipient_phone, request.plan_type),
                event=request.event,
                organization_id=request.organization_id,
                error_message="no running event loop",
            ))
            return None

        task = loop.create_task(self.dispatch(request))
        # Hold a reference until done so the task is not garbage collected mid-send
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self, timeout: float = 5.0) -> int:
        """
        Wait up to `timeout` seconds for in-flight send() tasks.

        Returns the number of tasks still pending when the timeout expired.
        """
        pending = list(self._pending)
        if not pending:
            return 0
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(
                f"Notification drain timed out after {timeout}s: "
                f"{len(still_pending)} of {len(pending)} dispatches still in flight"
            )
        else:
            logger.info(f"Drained {len(done)} in-flight notification dispatches")
        return len(still_pending)

    async def dispatch(self, request: NotificationRequest) -> DispatchResult:
        """Send one notification and return its outcome. Never raises."""
        channel = self.channel_resolver.resolve(request.recipient_phone, request.plan_type)
        missing = self._missing_fields(request)
        if missing:
            logger.warning(
                "Notification data missing fields event=%s organization_id=%s missing=%s",
                request.event.value, request.organization_id, missing,
            )

        try:
            if channel == NotificationChannel.WHATSAPP:
                result = await self._send_via_whatsapp(request)
            else:
                result = await self._send_via_email(request)
        except Exception as e:
            label = "WhatsApp" if channel == NotificationChannel.WHATSAPP else "Email"
            logger.error(
                "%s notification failed event=%s organization_id=%s error=%s",
                label, request.event.value, request.organization_id, e,
            )
            result = DispatchResult(
                outcome="failed",
                channel=channel,
                event=request.event,
                organization_id=request.organization_id,
                error_message=str(e)[:500],
            )
        else:
            if result.outcome == "sent":
                logger.info(
                    "Notification sent channel=%s event=%s organization_id=%s",
                    channel.value, request.event.value, request.organization_id,
                )

        result.missing_fields = missing
        await self._notify_observer(result)
        return result

    # -------------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------------

    async def _send_via_whatsapp(self, request: NotificationRequest) -> DispatchResult:
        if not self.whatsapp_service:
            raise WhatsAppSendError("WhatsApp provider not configured")

        response = await self.whatsapp_service.send_template(
            to=request.recipient_phone,
            template_name=EVENT_TO_TEMPLATE[request.event],
            language_code=LOCALE_TO_LANGUAGE_CODE.get(request.locale, DEFAULT_LANGUAGE_CODE),
            components=self._build_whatsapp_components(request.event, request.data),
        )
        if not response.success:
            raise WhatsAppSendError("WhatsApp provider reported an unsuccessful send")

        return DispatchResult(
            outcome="sent",
            channel=NotificationChannel.WHATSAPP,
            event=request.event,
            organization_id=request.organization_id,
            message_id=response.message_id or None,
        )

    async def _send_via_email(self, request: NotificationRequest) -> DispatchResult:
        if not request.recipient_email:
            logger.error(
                "Email notification skipped: no recipientEmail event=%s organization_id=%s",
                request.event.value, request.organization_id,
            )
            return DispatchResult(
                outcome="skipped",
                channel=NotificationChannel.EMAIL,
                event=request.event,
                organization_id=request.organization_id,
                error_message="no_recipient",
            )

        locale = "en" if request.locale == "en" else "pt-BR"
        data = request.data
        to = request.recipient_email

        if request.event == NotificationEvent.APPOINTMENT_CONFIRMED:
            await self.email_service.send_booking_confirmation(
                to=to,
                locale=locale,
                customer_name=_field(data, "customer_name"),
                service_name=_field(data, "service_name"),
                appointment_date=_field(data, "appointment_date"),
                appointment_time=_field(data, "appointment_time"),
                organization_name=_field(data, "organization_name"),
                cancel_url=_field(data, "cancel_url"),
                reschedule_url=_field(data, "reschedule_url"),
            )
        elif request.event == NotificationEvent.APPOINTMENT_CANCELLED:
            await self.email_service.send_booking_cancellation(
                to=to,
                locale=locale,
                customer_name=_field(data, "customer_name"),
                service_name=_field(data, "service_name"),
                appointment_date=_field(data, "appointment_date"),
                appointment_time=_field(data, "appointment_time"),
                organization_name=_field(data, "organization_name"),
            )
        elif request.event == NotificationEvent.APPOINTMENT_RESCHEDULED:
            await self.email_service.send_booking_reschedule(
                to=to,
                locale=locale,
                customer_name=_field(data, "customer_name"),
                service_name=_field(data, "service_name"),
                old_date=_field(data, "old_date"),
                old_time=_field(data, "old_time"),
                new_date=_field(data, "new_date"),
                new_time=_field(data, "new_time"),
                organization_name=_field(data, "organization_name"),
                cancel_url=_field(data, "cancel_url"),
                reschedule_url=_field(data, "reschedule_url"),
            )
        else:
            await self.email_service.send_appointment_reminder(
                to=to,
                locale=locale,
                customer_name=_field(data, "customer_name"),
                service_name=_field(data, "service_name"),
                appointment_date=_field(data, "appointment_date"),
                appointment_time=_field(data, "appointment_time"),
                organization_name=_field(data, "organization_name"),
                cancel_url=_field(data, "cancel_url"),
                reschedule_url=_field(data, "reschedule_url"),
            )

        return DispatchResult(
            outcome="sent",
            channel=NotificationChannel.EMAIL,
            event=request.event,
            organization_id=request.organization_id,
        )

    def _build_whatsapp_components(self, event: NotificationEvent, data: Dict[str, str]) -> TemplateComponents:
        if event == NotificationEvent.APPOINTMENT_CONFIRMED:
            return build_confirmation_components(
                customer_name=_field(data, "customer_name"),
                organization_name=_field(data, "organization_name"),
                service_name=_field(data, "service_name"),
                appointment_date=_field(data, "appointment_date"),
                appointment_time=_field(data, "appointment_time"),
                reschedule_url_suffix=_field(data, "reschedule_url_suffix"),
                cancel_url_suffix=_field(data, "cancel_url_suffix"),
            )
        if event == NotificationEvent.APPOINTMENT_CANCELLED:
            return build_cancellation_components(
                customer_name=_field(data, "customer_name"),
                organization_name=_field(data, "organization_name"),
                service_name=_field(data, "service_name"),
                appointment_date=_field(data, "appointment_date"),
                appointment_time=_field(data, "appointment_time"),
            )
        if event == NotificationEvent.APPOINTMENT_RESCHEDULED:
            return build_reschedule_components(
                customer_name=_field(data, "customer_name"),
                organization_name=_field(data, "organization_name"),
                service_name=_field(data, "service_name"),
                old_date=_field(data, "old_date"),
                old_time=_field(data, "old_time"),
                new_date=_field(data, "new_date"),
                new_time=_field(data, "new_time"),
                reschedule_url_suffix=_field(data, "reschedule_url_suffix"),
                cancel_url_suffix=_field(data, "cancel_url_suffix"),
            )
        return build_reminder_components(
            customer_name=_field(data, "customer_name"),
            organization_name=_field(data, "organization_name"),
            service_name=_field(data, "service_name"),
            appointment_date=_field(data, "appointment_date"),
            appointment_time=_field(data, "appointment_time"),
            reschedule_url_suffix=_field(data, "reschedule_url_suffix"),
            cancel_url_suffix=_field(data, "cancel_url_suffix"),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _missing_fields(self, request: NotificationRequest) -> List[str]:
        # Reschedule templates render blanks for these; reported, not rejected
        if request.event != NotificationEvent.APPOINTMENT_RESCHEDULED:
            return []
        return [key for key in RESCHEDULE_REQUIRED_FIELDS if not request.data.get(key)]

    async def _notify_observer(self, result: DispatchResult) -> None:
        if not self.on_result:
            return
        try:
            outcome: Any = self.on_result(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Notification result observer failed: {e}")

    def _notify_observer_sync(self, result: DispatchResult) -> None:
        if not self.on_result:
            return
        try:
            outcome: Any = self.on_result(result)
            if inspect.iscoroutine(outcome):
                # No loop to run an async observer on
                outcome.close()
                logger.warning("Notification result observer is async and no event loop is running")
        except Exception as e:
            logger.warning(f"Notification result observer failed: {e}")
