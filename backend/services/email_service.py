"""Transactional email for appointment notifications (Postmark).

One sender per notification event. Every sender takes the recipient, the locale
(pt-BR or en) and the event's fields, and raises EmailDeliveryError when the
provider rejects the message.
"""
from postmarker.core import PostmarkClient
from typing import Any, Dict, Optional
import html
import os
import logging

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "Schedulizer <noreply@contact.schedulizer.me>")
DEFAULT_LOCALE = "pt-BR"

SUBJECTS = {
    "confirmation": {
        "pt-BR": "Agendamento confirmado - {organization_name}",
        "en": "Booking confirmed - {organization_name}",
    },
    "cancellation": {
        "pt-BR": "Agendamento cancelado - {organization_name}",
        "en": "Booking cancelled - {organization_name}",
    },
    "reschedule": {
        "pt-BR": "Agendamento reagendado - {organization_name}",
        "en": "Booking rescheduled - {organization_name}",
    },
    "reminder": {
        "pt-BR": "Lembrete: seu agendamento é amanhã - {organization_name}",
        "en": "Reminder: your appointment is tomorrow - {organization_name}",
    },
}

COPY = {
    "pt-BR": {
        "greeting": "Olá {customer_name},",
        "confirmation": "Seu agendamento foi confirmado.",
        "cancellation": "Seu agendamento foi cancelado.",
        "reschedule": "Seu agendamento foi reagendado.",
        "reminder": "Este é um lembrete do seu agendamento de amanhã.",
        "service": "Serviço",
        "date_time": "Data/Hora",
        "old_date_time": "Data/Hora anterior",
        "new_date_time": "Nova Data/Hora",
        "business": "Estabelecimento",
        "reschedule_link": "Reagendar",
        "cancel_link": "Cancelar",
    },
    "en": {
        "greeting": "Hi {customer_name},",
        "confirmation": "Your booking has been confirmed.",
        "cancellation": "Your booking has been cancelled.",
        "reschedule": "Your booking has been rescheduled.",
        "reminder": "This is a reminder of your appointment tomorrow.",
        "service": "Service",
        "date_time": "Date/Time",
        "old_date_time": "Previous Date/Time",
        "new_date_time": "New Date/Time",
        "business": "Business",
        "reschedule_link": "Reschedule",
        "cancel_link": "Cancel",
    },
}


class EmailDeliveryError(Exception):
    """Provider-side failure sending an email."""
    pass


def _normalize_locale(locale: Optional[str]) -> str:
    return locale if locale in COPY else DEFAULT_LOCALE


def _escape(value: Any) -> str:
    # Customer-supplied booking fields must never render as markup
    return html.escape(str(value or ""), quote=True)


class EmailService:
    def __init__(self, client: Optional[PostmarkClient] = None):
        self.client = client

    @classmethod
    def from_env(cls) -> "EmailService":
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - email sends will fail")
            return cls()
        logger.info("Postmark email client initialized")
        return cls(PostmarkClient(server_token=postmark_token))

    # -------------------------------------------------------------------------
    # Per-event senders
    # -------------------------------------------------------------------------

    async def send_booking_confirmation(
        self,
        to: str,
        locale: str,
        customer_name: str,
        service_name: str,
        appointment_date: str,
        appointment_time: str,
        organization_name: str,
        cancel_url: str,
        reschedule_url: str,
    ) -> None:
        await self._send("confirmation", to, locale, {
            "customer_name": customer_name,
            "organization_name": organization_name,
            "rows": [
                ("service", service_name),
                ("date_time", f"{appointment_date} {appointment_time}"),
                ("business", organization_name),
            ],
            "cancel_url": cancel_url,
            "reschedule_url": reschedule_url,
        })

    async def send_booking_cancellation(
        self,
        to: str,
        locale: str,
        customer_name: str,
        service_name: str,
        appointment_date: str,
        appointment_time: str,
        organization_name: str,
    ) -> None:
        await self._send("cancellation", to, locale, {
            "customer_name": customer_name,
            "organization_name": organization_name,
            "rows": [
                ("service", service_name),
                ("date_time", f"{appointment_date} {appointment_time}"),
                ("business", organization_name),
            ],
        })

    async def send_booking_reschedule(
        self,
        to: str,
        locale: str,
        customer_name: str,
        service_name: str,
        old_date: str,
        old_time: str,
        new_date: str,
        new_time: str,
        organization_name: str,
        cancel_url: str,
        reschedule_url: str,
    ) -> None:
        await self._send("reschedule", to, locale, {
            "customer_name": customer_name,
            "organization_name": organization_name,
            "rows": [
                ("service", service_name),
                ("old_date_time", f"{old_date} {old_time}"),
                ("new_date_time", f"{new_date} {new_time}"),
                ("business", organization_name),
            ],
            "cancel_url": cancel_url,
            "reschedule_url": reschedule_url,
        })

    async def send_appointment_reminder(
        self,
        to: str,
        locale: str,
        customer_name: str,
        service_name: str,
        appointment_date: str,
        appointment_time: str,
        organization_name: str,
        cancel_url: str,
        reschedule_url: str,
    ) -> None:
        await self._send("reminder", to, locale, {
            "customer_name": customer_name,
            "organization_name": organization_name,
            "rows": [
                ("service", service_name),
                ("date_time", f"{appointment_date} {appointment_time}"),
                ("business", organization_name),
            ],
            "cancel_url": cancel_url,
            "reschedule_url": reschedule_url,
        })

    # -------------------------------------------------------------------------
    # Rendering + delivery
    # -------------------------------------------------------------------------

    async def _send(self, kind: str, to: str, locale: str, model: Dict[str, Any]) -> None:
        if not self.client:
            raise EmailDeliveryError("POSTMARK_SERVER_TOKEN not set")

        locale = _normalize_locale(locale)
        subject = SUBJECTS[kind][locale].format(organization_name=model["organization_name"])
        try:
            response = self.client.emails.send(
                From=DEFAULT_SENDER,
                To=to,
                Subject=subject,
                HtmlBody=self._build_html_body(kind, locale, model),
                TextBody=self._build_text_body(kind, locale, model),
                TrackOpens=True,
                TrackLinks="HtmlOnly",
                Tag=f"appointment-{kind}",
            )
        except Exception as e:
            raise EmailDeliveryError(f"Failed to send {kind} email: {e}") from e

        logger.info(f"Appointment {kind} email sent: {response.get('MessageID')}")

    def _build_html_body(self, kind: str, locale: str, model: Dict[str, Any]) -> str:
        copy = COPY[locale]
        rows = "".join(
            f"<li><strong>{copy[label]}:</strong> {_escape(value)}</li>" for label, value in model["rows"]
        )
        links = ""
        if model.get("reschedule_url") or model.get("cancel_url"):
            links = f"""
                <p style="margin: 30px 0;">
                    <a href="{_escape(model.get('reschedule_url') or '#')}"
                       style="background-color: #2563eb; color: white; padding: 12px 24px;
                              text-decoration: none; border-radius: 6px; display: inline-block;">
                        {copy['reschedule_link']}
                    </a>
                    <a href="{_escape(model.get('cancel_url') or '#')}" style="margin-left: 16px; color: #dc2626;">
                        {copy['cancel_link']}
                    </a>
                </p>
            """
        return f"""
            <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <p>{copy['greeting'].format(customer_name=_escape(model['customer_name']))}</p>
                <p>{copy[kind]}</p>
                <ul>{rows}</ul>
                {links}
            </body>
            </html>
            """

    def _build_text_body(self, kind: str, locale: str, model: Dict[str, Any]) -> str:
        copy = COPY[locale]
        lines = [copy["greeting"].format(customer_name=model["customer_name"]), "", copy[kind], ""]
        lines.extend(f"{copy[label]}: {value}" for label, value in model["rows"])
        if model.get("reschedule_url"):
            lines.extend(["", f"{copy['reschedule_link']}: {model['reschedule_url']}"])
        if model.get("cancel_url"):
            lines.append(f"{copy['cancel_link']}: {model['cancel_url']}")
        return "\n".join(lines)
