"""Plan limit routes - lets creation flows ask whether an organization may add a member or service."""
from fastapi import APIRouter, Depends, Request
import logging

from middleware import require_api_key
from models import LimitCheckResult, LimitedResource
from services.limit_guard import ResourceLimitGuard
from services.scheduling_store import SchedulingStore

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/organizations",
    tags=["limits"],
    dependencies=[Depends(require_api_key)],
)


def get_limit_guard(request: Request) -> ResourceLimitGuard:
    guard = getattr(request.app.state, "limit_guard", None)
    if guard is None:
        guard = ResourceLimitGuard(SchedulingStore())
        request.app.state.limit_guard = guard
    return guard


@router.get("/{organization_id}/limits/{resource}", response_model=LimitCheckResult)
async def check_limit(
    organization_id: str,
    resource: LimitedResource,
    guard: ResourceLimitGuard = Depends(get_limit_guard),
):
    return await guard.check(organization_id, resource)
