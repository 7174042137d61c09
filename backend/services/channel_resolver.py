"""Channel selection for outbound appointment notifications."""
from typing import Optional

from models import NotificationChannel
from services.plan_registry import plan_registry


class ChannelResolver:
    """Pick WhatsApp when the recipient has a phone and the plan includes it; email otherwise."""

    def resolve(self, recipient_phone: Optional[str], plan_type: Optional[str]) -> NotificationChannel:
        if not recipient_phone:
            return NotificationChannel.EMAIL

        limits = plan_registry.get_limits_by_string(plan_type)
        if not limits or not limits.whatsapp:
            return NotificationChannel.EMAIL

        return NotificationChannel.WHATSAPP


channel_resolver = ChannelResolver()
