"""
Tier lookup interface.
Answers whether a user is entitled to automatic reallocation.
"""

from abc import ABC, abstractmethod

TIER_PRIORITY = "priority"
TIER_STANDARD = "standard"


class TierLookup(ABC):
    """
    Interface for resolving a user's waitlist tier.

    Implementations:
    - SubscriptionTierLookup: reads the subscriptions table on every call
    - StaticTierLookup: fixed mapping, for tests and local runs
    """

    @abstractmethod
    async def get_tier(self, user_id: str) -> str:
        """
        Resolve the tier for a user.

        Args:
            user_id: User to classify

        Returns:
            TIER_PRIORITY or TIER_STANDARD
        """
        pass
