"""Canonical Plan Registry - Single Source of Truth for plan tiers and limits.

This is the AUTHORITATIVE source for:
- Plan tiers (essential, professional)
- Member and service limits
- Notification channel entitlements
- Stripe price ID -> plan tier mapping

RULES:
1. Plan tier is derived from the subscription price_id ONLY (trialing is the one override)
2. Subscriptions are read fresh for every decision; nothing here caches them
3. resolve_plan_from_subscription never guesses - unresolved returns None
4. The essential fallback lives in exactly one place: resolve_plan_with_fallback
"""
from typing import Dict, Optional, Tuple
import os
import logging

from models import AuditAction, PlanLimits, PlanType, ResolvedPlan, SubscriptionSnapshot, SubscriptionStatus
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)


# ============================================================================
# PLAN DEFINITIONS - Static configuration, not persisted per organization
# ============================================================================
PLAN_CONFIGS: Dict[PlanType, PlanLimits] = {
    PlanType.ESSENTIAL: PlanLimits(
        max_members=1,
        max_services=10,
        email=True,
        whatsapp=False,
    ),
    PlanType.PROFESSIONAL: PlanLimits(
        max_members=5,
        max_services=None,  # Unbounded
        email=True,
        whatsapp=True,
    ),
}

FALLBACK_PLAN_TYPE = PlanType.ESSENTIAL


# ============================================================================
# STRIPE PRICE ID MAPPINGS - four configured price identifiers
# ============================================================================
PRICE_ENV_VARS = {
    PlanType.ESSENTIAL: ("STRIPE_PRICE_ESSENTIAL_MONTHLY", "STRIPE_PRICE_ESSENTIAL_YEARLY"),
    PlanType.PROFESSIONAL: ("STRIPE_PRICE_PROFESSIONAL_MONTHLY", "STRIPE_PRICE_PROFESSIONAL_YEARLY"),
}


def get_stripe_price_mappings() -> Dict[str, PlanType]:
    """Build price_id -> plan tier from the environment. Unset variables are skipped."""
    mappings = {}
    for plan_type, env_vars in PRICE_ENV_VARS.items():
        for env_var in env_vars:
            price_id = (os.getenv(env_var) or "").strip()
            if price_id:
                mappings[price_id] = plan_type
    return mappings


def get_plan_limits(plan_type: PlanType) -> PlanLimits:
    return PLAN_CONFIGS[plan_type]


class PlanRegistryService:
    """Maps subscriptions to plan tiers and exposes their entitlements."""

    # -------------------------------------------------------------------------
    # Plan Information
    # -------------------------------------------------------------------------

    def get_limits_by_string(self, plan_type: Optional[str]) -> Optional[PlanLimits]:
        """Limits for a plan type string, or None when the string is not a known tier."""
        try:
            return PLAN_CONFIGS[PlanType(plan_type)]
        except ValueError:
            return None

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve_plan_type(self, price_id: str) -> Optional[PlanType]:
        """Map a Stripe price ID to its plan tier."""
        return get_stripe_price_mappings().get(price_id)

    def resolve_plan_from_subscription(self, subscription: SubscriptionSnapshot) -> Optional[ResolvedPlan]:
        """
        Resolve a subscription to a plan.

        Trialing subscriptions always get professional (trial unlocks the full feature set),
        whatever their price_id. Otherwise an unknown or missing price_id returns None;
        callers decide the fail-safe.
        """
        if subscription.status == SubscriptionStatus.TRIALING.value:
            return ResolvedPlan(
                type=PlanType.PROFESSIONAL,
                limits=get_plan_limits(PlanType.PROFESSIONAL),
                stripe_price_id=subscription.stripe_price_id or "",
            )

        if not subscription.stripe_price_id:
            return None

        plan_type = self.resolve_plan_type(subscription.stripe_price_id)
        if not plan_type:
            return None

        return ResolvedPlan(
            type=plan_type,
            limits=get_plan_limits(plan_type),
            stripe_price_id=subscription.stripe_price_id,
        )

    def resolve_plan_with_fallback(self, subscription: SubscriptionSnapshot) -> Tuple[ResolvedPlan, bool]:
        """
        Resolve a subscription, substituting the essential tier when it cannot be resolved.

        Returns:
            (resolved_plan, fallback_applied)
        """
        resolved = self.resolve_plan_from_subscription(subscription)
        if resolved:
            return resolved, False

        return ResolvedPlan(
            type=FALLBACK_PLAN_TYPE,
            limits=get_plan_limits(FALLBACK_PLAN_TYPE),
            stripe_price_id=subscription.stripe_price_id or "",
        ), True


# Singleton instance
plan_registry = PlanRegistryService()


async def report_plan_fallback(
    organization_id: str,
    subscription: SubscriptionSnapshot,
    source: str,
    resource: Optional[str] = None,
) -> None:
    """Log and audit an applied essential fallback; an unmapped price id is usually a config bug."""
    logger.error(
        f"Failed to resolve plan type from price id: organization_id={organization_id} "
        f"price_id={subscription.stripe_price_id} status={subscription.status} "
        f"resource={resource} reason=unresolved_price_id fallback={FALLBACK_PLAN_TYPE.value} "
        f"action=fallback_applied source={source}"
    )
    await create_audit_log(
        action=AuditAction.PLAN_FALLBACK_APPLIED,
        organization_id=organization_id,
        resource_type="subscription",
        metadata={
            "stripe_price_id": subscription.stripe_price_id,
            "status": subscription.status,
            "fallback": FALLBACK_PLAN_TYPE.value,
            "source": source,
            "resource": resource,
            "action": "fallback_applied",
        },
        reason_code="UNRESOLVED_PRICE_ID",
    )
