"""Scheduling persistence (MongoDB) - the reads and the one write the notification engine needs."""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from database import database
from models import AppointmentStatus, SubscriptionSnapshot

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
MAX_REMINDERS_PER_RUN = 1000


class SchedulingStore:
    """Thin query layer over the organizations/services/members/subscriptions/appointments collections."""

    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        return self._db if self._db is not None else database.get_db()

    async def find_eligible_reminders(self, window_start: datetime, window_end: datetime) -> List[Dict[str, Any]]:
        """Appointments due a reminder: remindable status, start in [window_start, window_end), never reminded."""
        rows = await self.db.appointments.find(
            {
                "status": {"$in": REMINDABLE_STATUSES},
                "start_datetime": {"$gte": window_start, "$lt": window_end},
                "reminder_sent_at": None,
            },
            {"_id": 0}
        ).to_list(MAX_REMINDERS_PER_RUN)
        if len(rows) >= MAX_REMINDERS_PER_RUN:
            # Unstamped leftovers stay eligible while still inside the window
            logger.warning(
                f"Reminder eligibility cap reached: loaded {len(rows)} appointments "
                f"(limit={MAX_REMINDERS_PER_RUN}); the rest wait for the next run"
            )
        return rows

    async def find_organization(self, organization_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.organizations.find_one({"id": organization_id}, {"_id": 0})

    async def find_service(self, service_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.services.find_one({"id": service_id}, {"_id": 0, "id": 1, "name": 1})

    async def find_subscription(self, organization_id: str) -> Optional[SubscriptionSnapshot]:
        """Fresh subscription snapshot for an organization, or None when it has no billing record."""
        doc = await self.db.subscriptions.find_one(
            {"organization_id": organization_id},
            {"_id": 0, "stripe_price_id": 1, "status": 1}
        )
        if not doc:
            return None
        return SubscriptionSnapshot(
            stripe_price_id=doc.get("stripe_price_id"),
            status=doc.get("status") or "",
        )

    async def count_members(self, organization_id: str) -> int:
        return await self.db.members.count_documents({"organization_id": organization_id})

    async def count_services(self, organization_id: str) -> int:
        return await self.db.services.count_documents({"organization_id": organization_id})

    async def mark_reminder_sent(self, appointment_id: str, timestamp: datetime) -> None:
        # Plain $set: a concurrent second write lands the same marker
        await self.db.appointments.update_one(
            {"id": appointment_id},
            {"$set": {"reminder_sent_at": timestamp}}
        )
