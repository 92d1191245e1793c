"""Usage summary endpoint (internal API key)."""

from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_usage_accountant, require_internal_api_key
from app.schemas.usage import UsageCounters, UsageSummaryResponse
from app.services.usage.accountant import UsageAccountant

router = APIRouter(
    prefix="/usage",
    tags=["usage"],
    dependencies=[Depends(require_internal_api_key)],
)


@router.get("/{user_id}", response_model=UsageSummaryResponse)
async def get_usage_summary(
    user_id: UUID,
    accountant: UsageAccountant = Depends(get_usage_accountant),
) -> UsageSummaryResponse:
    """Current billing-period counters and advisory quota state."""
    entry, quota = await accountant.quota_status(user_id)
    return UsageSummaryResponse(
        user_id=user_id,
        period_start=entry.period_start,
        period_end=entry.period_end,
        subscription_tier=entry.subscription_tier,
        price_id=entry.price_id,
        usage=UsageCounters.model_validate(entry),
        quota=quota,
    )
