"""
Tier lookup implementations.

Tiers are resolved on every reaction rather than cached on the waitlist entry:
a user may subscribe (or lapse) between joining the waitlist and the slot
freeing up, and the allocator must see the current state.
"""

from typing import Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.subscription import Subscription
from app.services.interfaces.tier_lookup import TierLookup, TIER_PRIORITY, TIER_STANDARD

PAID_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})
PRIORITY_TIERS = frozenset({"pro"})


def tier_for_subscription(subscription: Subscription | None) -> str:
    if subscription is None:
        return TIER_STANDARD
    if subscription.status in PAID_SUBSCRIPTION_STATUSES:
        return TIER_PRIORITY
    # "pro" only counts while the subscription has not lapsed
    if subscription.tier in PRIORITY_TIERS and subscription.status not in ("canceled", "past_due"):
        return TIER_PRIORITY
    return TIER_STANDARD


class SubscriptionTierLookup(TierLookup):
    """Reads the subscriptions table with a short-lived session per lookup."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_tier(self, user_id: str) -> str:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Subscription).where(Subscription.user_id == user_id)
            )
            return tier_for_subscription(result.scalar_one_or_none())


class StaticTierLookup(TierLookup):
    """Fixed user -> tier mapping. Unknown users are standard."""

    def __init__(self, tiers: Mapping[str, str]):
        self.tiers = dict(tiers)

    async def get_tier(self, user_id: str) -> str:
        return self.tiers.get(user_id, TIER_STANDARD)
