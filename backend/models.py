from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class PlanType(str, Enum):
    ESSENTIAL = "essential"
    PROFESSIONAL = "professional"

class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"

class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

class NotificationEvent(str, Enum):
    APPOINTMENT_CONFIRMED = "appointment.confirmed"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_RESCHEDULED = "appointment.rescheduled"
    APPOINTMENT_REMINDER = "appointment.reminder"

class NotificationChannel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"

class Locale(str, Enum):
    PT_BR = "pt-BR"
    EN = "en"

class LimitedResource(str, Enum):
    MEMBERS = "members"
    SERVICES = "services"

class AuditAction(str, Enum):
    # Plan policy
    PLAN_LIMIT_ENFORCED = "PLAN_LIMIT_ENFORCED"
    PLAN_FALLBACK_APPLIED = "PLAN_FALLBACK_APPLIED"

    # Reminders
    REMINDER_BATCH_COMPLETED = "REMINDER_BATCH_COMPLETED"
    REMINDER_FAILED = "REMINDER_FAILED"

    # Notification dispatch
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    NOTIFICATION_SKIPPED = "NOTIFICATION_SKIPPED"

# ============================================================================
# PLAN POLICY
# ============================================================================

class PlanLimits(BaseModel):
    """Resource and channel entitlements of a plan tier. None means unbounded."""
    model_config = ConfigDict(frozen=True)

    max_members: Optional[int] = None
    max_services: Optional[int] = None
    email: bool = True
    whatsapp: bool = False


class SubscriptionSnapshot(BaseModel):
    """Read-only projection of a persisted subscription; never cached."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    stripe_price_id: Optional[str] = None
    status: str


class ResolvedPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PlanType
    limits: PlanLimits
    stripe_price_id: str = ""

# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationRequest(BaseModel):
    """One outbound notification. Built by the caller, consumed once by the dispatcher."""
    model_config = ConfigDict(frozen=True)

    event: NotificationEvent
    organization_id: str
    recipient_phone: Optional[str] = None
    recipient_email: Optional[str] = None
    locale: str = Locale.PT_BR.value
    data: Dict[str, str] = Field(default_factory=dict)
    plan_type: str = PlanType.ESSENTIAL.value

# ============================================================================
# REMINDER BATCH / LIMIT GUARD RESULTS
# ============================================================================

class BatchResult(BaseModel):
    sent: int = 0
    failed: int = 0


class LimitCheckResult(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    current: Optional[int] = None
    limit: Optional[int] = None
    plan_type: Optional[str] = None

# ============================================================================
# AUDIT
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    organization_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    reason_code: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
