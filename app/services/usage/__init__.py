"""Usage accounting: billing-period ledger, per-conversation detail, tier limits."""

from app.services.usage.accountant import UsageAccountant, billable_minutes
from app.services.usage.tiers import TierLimits, get_tier_limits

__all__ = ["TierLimits", "UsageAccountant", "billable_minutes", "get_tier_limits"]
