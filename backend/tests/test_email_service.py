"""Postmark email senders: locale copy, management links, provider failure mapping."""
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from services.email_service import EmailDeliveryError, EmailService


def _service():
    client = MagicMock()
    client.emails.send = MagicMock(return_value={"MessageID": "pm-1"})
    return EmailService(client=client), client


@pytest.mark.asyncio
async def test_reminder_email_pt_br():
    service, client = _service()
    await service.send_appointment_reminder(
        to="ana@example.com", locale="pt-BR", customer_name="Ana", service_name="Corte",
        appointment_date="10/03/2025", appointment_time="14:30", organization_name="Studio",
        cancel_url="https://app.example.com/booking/studio/manage/tok?action=cancel",
        reschedule_url="https://app.example.com/booking/studio/manage/tok?action=reschedule",
    )
    kwargs = client.emails.send.call_args.kwargs
    assert kwargs["To"] == "ana@example.com"
    assert kwargs["Subject"].startswith("Lembrete")
    assert "Studio" in kwargs["Subject"]
    assert "Olá Ana" in kwargs["TextBody"]
    assert "10/03/2025 14:30" in kwargs["TextBody"]
    assert "https://app.example.com/booking/studio/manage/tok?action=cancel" in kwargs["HtmlBody"]
    assert kwargs["Tag"] == "appointment-reminder"


@pytest.mark.asyncio
async def test_confirmation_email_en():
    service, client = _service()
    await service.send_booking_confirmation(
        to="bob@example.com", locale="en", customer_name="Bob", service_name="Massage",
        appointment_date="10/03/2025", appointment_time="09:00", organization_name="Spa",
        cancel_url="c", reschedule_url="r",
    )
    kwargs = client.emails.send.call_args.kwargs
    assert kwargs["Subject"] == "Booking confirmed - Spa"
    assert "Hi Bob," in kwargs["TextBody"]


@pytest.mark.asyncio
async def test_unknown_locale_uses_pt_br():
    service, client = _service()
    await service.send_booking_cancellation(
        to="x@example.com", locale="fr", customer_name="X", service_name="S",
        appointment_date="d", appointment_time="t", organization_name="O",
    )
    assert client.emails.send.call_args.kwargs["Subject"].startswith("Agendamento cancelado")


@pytest.mark.asyncio
async def test_reschedule_email_lists_old_and_new():
    service, client = _service()
    await service.send_booking_reschedule(
        to="x@example.com", locale="en", customer_name="X", service_name="S",
        old_date="01/01/2025", old_time="10:00", new_date="02/01/2025", new_time="11:00",
        organization_name="O", cancel_url="c", reschedule_url="r",
    )
    text = client.emails.send.call_args.kwargs["TextBody"]
    assert "Previous Date/Time: 01/01/2025 10:00" in text
    assert "New Date/Time: 02/01/2025 11:00" in text


@pytest.mark.asyncio
async def test_provider_failure_raises_delivery_error():
    service, client = _service()
    client.emails.send.side_effect = RuntimeError("422 inactive recipient")
    with pytest.raises(EmailDeliveryError, match="inactive recipient"):
        await service.send_booking_cancellation(
            to="x@example.com", locale="en", customer_name="X", service_name="S",
            appointment_date="d", appointment_time="t", organization_name="O",
        )


@pytest.mark.asyncio
async def test_missing_client_raises_delivery_error():
    with pytest.raises(EmailDeliveryError):
        await EmailService().send_booking_cancellation(
            to="x@example.com", locale="en", customer_name="X", service_name="S",
            appointment_date="d", appointment_time="t", organization_name="O",
        )


@pytest.mark.asyncio
async def test_html_body_escapes_customer_supplied_fields():
    service, client = _service()
    await service.send_appointment_reminder(
        to="ana@example.com", locale="en",
        customer_name='<a href="https://evil.example">Pay here</a>',
        service_name="<script>alert(1)</script>",
        appointment_date="10/03/2025", appointment_time="14:30",
        organization_name="Studio & Co",
        cancel_url='https://app.example.com/booking/s/manage/t?action=cancel"><b>x</b>',
        reschedule_url="https://app.example.com/booking/s/manage/t?action=reschedule&x=1",
    )
    html_body = client.emails.send.call_args.kwargs["HtmlBody"]
    assert '<a href="https://evil.example">' not in html_body
    assert "&lt;a href=&quot;https://evil.example&quot;&gt;Pay here&lt;/a&gt;" in html_body
    assert "<script>" not in html_body
    assert "Studio &amp; Co" in html_body
    assert '"><b>x</b>' not in html_body
    assert 'href="https://app.example.com/booking/s/manage/t?action=reschedule&amp;x=1"' in html_body
