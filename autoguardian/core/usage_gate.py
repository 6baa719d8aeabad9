"""
Tier-based usage gate.

Enforces the free-tier monthly consultation cap. Paid tiers are unlimited.

The count-then-insert sequence is not atomic: two concurrent requests from
the same owner near the limit can both pass.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .errors import QuotaExceeded, UsageLookupFailed
from .requests import Identity

logger = logging.getLogger(__name__)

DEFAULT_FREE_TIER_LIMIT = 3


class Tier(Enum):
    """Subscription levels. Only FREE is metered."""
    FREE = "free"
    PRO = "pro"
    SHOP = "shop"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Tier":
        """Map a stored tier string to a Tier, treating unknown values as FREE."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.FREE

    @property
    def is_metered(self) -> bool:
        return self is Tier.FREE


@dataclass(frozen=True)
class UsageDecision:
    """Outcome of a passed gate check."""
    tier: Tier
    used_this_month: int
    limit: Optional[int]

    @property
    def remaining_after_request(self) -> Optional[int]:
        """Consultations left once the current request completes; None when unlimited."""
        if self.limit is None:
            return None
        return max(0, self.limit - self.used_this_month - 1)


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the calendar month containing ``now`` (UTC)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def evaluate_quota(tier: Tier, used_this_month: int, limit: int) -> UsageDecision:
    """Decide whether a request may proceed.

    Args:
        tier: Current subscription tier of the owner
        used_this_month: Records created by the owner since the month started
        limit: Monthly cap for the free tier

    Returns:
        UsageDecision for the request

    Raises:
        QuotaExceeded: If the tier is metered and the cap is reached
    """
    if not tier.is_metered:
        return UsageDecision(tier=tier, used_this_month=used_this_month, limit=None)

    if used_this_month >= limit:
        raise QuotaExceeded(limit)

    return UsageDecision(tier=tier, used_this_month=used_this_month, limit=limit)


class UsageGate:
    """Counts this month's consultations and applies the tier quota."""

    def __init__(self, repository, free_tier_limit: int = DEFAULT_FREE_TIER_LIMIT):
        if free_tier_limit <= 0:
            raise ValueError("free_tier_limit must be > 0")
        self.repository = repository
        self.free_tier_limit = free_tier_limit

    def check(self, identity: Identity, now: Optional[datetime] = None) -> UsageDecision:
        """Look up tier and usage for ``identity`` and evaluate the quota.

        Raises:
            UsageLookupFailed: If the store cannot be read
            QuotaExceeded: If the free-tier cap is reached
        """
        try:
            tier = self.repository.get_tier(identity.user_id)
            used = self.repository.count_consultations_since(
                identity.user_id, month_start(now)
            )
        except Exception as e:
            logger.error("Error checking consultation count for %s: %s", identity.user_id, e)
            raise UsageLookupFailed() from e

        try:
            return evaluate_quota(tier, used, self.free_tier_limit)
        except QuotaExceeded:
            logger.warning(
                "User %s reached the free tier limit (%d/%d)",
                identity.user_id, used, self.free_tier_limit,
            )
            raise
