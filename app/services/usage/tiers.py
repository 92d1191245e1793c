"""Per-tier usage limits for a billing period.

A limit of -1 means unlimited. Unknown tiers fall back to starter.
"""

from dataclasses import dataclass

UNLIMITED = -1


@dataclass(frozen=True)
class TierLimits:
    """Usage allowance for one subscription tier."""

    tier: str
    max_sessions_per_period: int
    max_minutes_per_period: int
    max_minutes_per_session: int

    def remaining_sessions(self, sessions_used: int) -> int | None:
        if self.max_sessions_per_period == UNLIMITED:
            return None
        return max(0, self.max_sessions_per_period - sessions_used)

    def remaining_minutes(self, minutes_used: int) -> int | None:
        if self.max_minutes_per_period == UNLIMITED:
            return None
        return max(0, self.max_minutes_per_period - minutes_used)


TIER_LIMITS: dict[str, TierLimits] = {
    "starter": TierLimits(
        tier="starter",
        max_sessions_per_period=4,
        max_minutes_per_period=60,
        max_minutes_per_session=30,
    ),
    "pro": TierLimits(
        tier="pro",
        max_sessions_per_period=8,
        max_minutes_per_period=300,
        max_minutes_per_session=45,
    ),
    "enterprise": TierLimits(
        tier="enterprise",
        max_sessions_per_period=UNLIMITED,
        max_minutes_per_period=UNLIMITED,
        max_minutes_per_session=60,
    ),
}


def get_tier_limits(tier: str) -> TierLimits:
    """Return limits for a tier name (case-insensitive), defaulting to starter."""
    return TIER_LIMITS.get(tier.lower(), TIER_LIMITS["starter"])
