"""WhatsApp Cloud API client - template messages for appointment notifications."""
import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"
DEFAULT_API_VERSION = "v21.0"
REQUEST_TIMEOUT_SECONDS = 10.0


class WhatsAppSendError(Exception):
    """Provider-side failure sending a WhatsApp message."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SendMessageResult:
    message_id: str
    success: bool


class WhatsAppService:
    """Sends approved templates through the Graph API `/messages` endpoint."""

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = f"{GRAPH_API_BASE}/{api_version}/{phone_number_id}"
        self.access_token = access_token
        self._http_client = http_client

    @classmethod
    def from_env(cls) -> Optional["WhatsAppService"]:
        """Build from WHATSAPP_* env vars; None when not configured."""
        phone_number_id = (os.getenv("WHATSAPP_PHONE_NUMBER_ID") or "").strip()
        access_token = (os.getenv("WHATSAPP_ACCESS_TOKEN") or "").strip()
        if not phone_number_id or not access_token:
            logger.warning("WHATSAPP_PHONE_NUMBER_ID / WHATSAPP_ACCESS_TOKEN not set - WhatsApp sends will fail")
            return None
        api_version = (os.getenv("WHATSAPP_API_VERSION") or DEFAULT_API_VERSION).strip()
        return cls(phone_number_id, access_token, api_version)

    async def send_template(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: Optional[List[Dict[str, Any]]] = None,
    ) -> SendMessageResult:
        """
        Send a template message.

        Raises:
            WhatsAppSendError: non-2xx response, timeout or transport failure.
        """
        body = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": language_code},
                "components": components or [],
            },
        }
        return await self._send_message(body)

    async def _send_message(self, body: Dict[str, Any]) -> SendMessageResult:
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, body)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, body)
        except httpx.TimeoutException as e:
            raise WhatsAppSendError("WhatsApp API timeout") from e
        except httpx.HTTPError as e:
            raise WhatsAppSendError(f"WhatsApp API error: {e}") from e

        if response.status_code not in (200, 201):
            raise WhatsAppSendError(
                f"WhatsApp API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        data = response.json()
        messages = data.get("messages") or []
        message_id = messages[0].get("id", "") if messages else ""
        logger.info(f"WhatsApp message sent: {message_id}")
        return SendMessageResult(message_id=message_id, success=True)

    async def _post(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> httpx.Response:
        return await client.post(
            f"{self.base_url}/messages",
            json=body,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
