"""WhatsApp message templates for appointment notifications.

Each builder returns the `components` list for a Graph API template message.
Body parameters follow the placeholder order approved for the template; the two
URL buttons (reschedule, cancel) take the path suffix appended to the template's base URL.
"""
from typing import Any, Dict, List

CONFIRMATION_TEMPLATE_NAME = "appointment_confirmation"
CANCELLATION_TEMPLATE_NAME = "appointment_cancellation"
RESCHEDULE_TEMPLATE_NAME = "appointment_reschedule"
REMINDER_TEMPLATE_NAME = "appointment_reminder"

TemplateComponents = List[Dict[str, Any]]


def _text(value: str) -> Dict[str, str]:
    return {"type": "text", "text": value}


def _body(*values: str) -> Dict[str, Any]:
    return {"type": "body", "parameters": [_text(v) for v in values]}


def _url_buttons(reschedule_url_suffix: str, cancel_url_suffix: str) -> TemplateComponents:
    return [
        {"type": "button", "sub_type": "url", "index": 0, "parameters": [_text(reschedule_url_suffix)]},
        {"type": "button", "sub_type": "url", "index": 1, "parameters": [_text(cancel_url_suffix)]},
    ]


def build_confirmation_components(
    customer_name: str,
    organization_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    reschedule_url_suffix: str,
    cancel_url_suffix: str,
) -> TemplateComponents:
    return [
        _body(customer_name, organization_name, service_name, f"{appointment_date} {appointment_time}"),
        *_url_buttons(reschedule_url_suffix, cancel_url_suffix),
    ]


def build_cancellation_components(
    customer_name: str,
    organization_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
) -> TemplateComponents:
    # Cancelled appointments have nothing left to manage, so no buttons
    return [
        _body(customer_name, organization_name, service_name, f"{appointment_date} {appointment_time}"),
    ]


def build_reschedule_components(
    customer_name: str,
    organization_name: str,
    service_name: str,
    old_date: str,
    old_time: str,
    new_date: str,
    new_time: str,
    reschedule_url_suffix: str,
    cancel_url_suffix: str,
) -> TemplateComponents:
    return [
        _body(
            customer_name,
            organization_name,
            service_name,
            f"{old_date} {old_time}",
            f"{new_date} {new_time}",
        ),
        *_url_buttons(reschedule_url_suffix, cancel_url_suffix),
    ]


def build_reminder_components(
    customer_name: str,
    organization_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    reschedule_url_suffix: str,
    cancel_url_suffix: str,
) -> TemplateComponents:
    return [
        _body(customer_name, organization_name, service_name, f"{appointment_date} {appointment_time}"),
        *_url_buttons(reschedule_url_suffix, cancel_url_suffix),
    ]
