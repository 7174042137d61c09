"""Plan-based resource limit checks (members, services).

Advisory gate consulted before a creation flow adds a member or service. Reads the
subscription and current count fresh on every call and never mutates either.
"""
from typing import Optional
import logging

from models import AuditAction, LimitCheckResult, LimitedResource, PlanLimits
from services.plan_registry import PlanRegistryService, plan_registry as default_plan_registry, report_plan_fallback
from services.scheduling_store import SchedulingStore
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

REASON_NO_SUBSCRIPTION = "no_subscription"
REASON_LIMIT_EXCEEDED = "limit_exceeded"


def _limit_for(limits: PlanLimits, resource: LimitedResource) -> Optional[int]:
    if resource == LimitedResource.SERVICES:
        return limits.max_services
    return limits.max_members


class ResourceLimitGuard:
    def __init__(self, store: SchedulingStore, plan_registry: Optional[PlanRegistryService] = None):
        self.store = store
        self.plan_registry = plan_registry or default_plan_registry

    async def check(self, organization_id: str, resource: LimitedResource = LimitedResource.MEMBERS) -> LimitCheckResult:
        """Can this organization add one more `resource`?"""
        resource = LimitedResource(resource)
        subscription = await self.store.find_subscription(organization_id)
        current = await self._count(organization_id, resource)

        if subscription is None:
            # Bootstrap: the very first member/service exists before any billing record
            if current == 0:
                return LimitCheckResult(allowed=True)
            await self._log_denial(organization_id, resource, REASON_NO_SUBSCRIPTION, current=current)
            return LimitCheckResult(allowed=False, reason=REASON_NO_SUBSCRIPTION)

        plan, fallback_applied = self.plan_registry.resolve_plan_with_fallback(subscription)
        if fallback_applied:
            await report_plan_fallback(
                organization_id, subscription, source=f"limit_guard.{resource.value}", resource=resource.value
            )

        limit = _limit_for(plan.limits, resource)
        if limit is not None and current >= limit:
            await self._log_denial(
                organization_id, resource, REASON_LIMIT_EXCEEDED,
                current=current, limit=limit, plan_type=plan.type.value,
            )
            return LimitCheckResult(
                allowed=False,
                reason=REASON_LIMIT_EXCEEDED,
                current=current,
                limit=limit,
                plan_type=plan.type.value,
            )

        return LimitCheckResult(allowed=True, current=current, limit=limit, plan_type=plan.type.value)

    async def _count(self, organization_id: str, resource: LimitedResource) -> int:
        if resource == LimitedResource.SERVICES:
            return await self.store.count_services(organization_id)
        return await self.store.count_members(organization_id)

    async def _log_denial(
        self,
        organization_id: str,
        resource: LimitedResource,
        reason: str,
        current: int,
        limit: Optional[int] = None,
        plan_type: Optional[str] = None,
    ) -> None:
        logger.warning(
            f"Plan limit enforcement triggered: organization_id={organization_id} resource={resource.value} "
            f"reason={reason} plan_type={plan_type} current={current} limit={limit} action=blocked"
        )
        await create_audit_log(
            action=AuditAction.PLAN_LIMIT_ENFORCED,
            organization_id=organization_id,
            resource_type=resource.value,
            metadata={
                "reason": reason,
                "plan_type": plan_type,
                "current": current,
                "limit": limit,
                "action": "blocked",
            },
            reason_code=reason.upper(),
        )
