"""
Quota Tracker

Decides whether a user may publish another post under their subscription tier.
Both functions are pure: they read the user's counters and never change them.
"""

from typing import Optional

from config import settings
from data.models import SubscriptionTier, User


def can_publish(user: Optional[User]) -> bool:
    """
    Check whether the user is allowed to publish one more post.

    Args:
        user: The campaign owner, or None if it could not be loaded

    Returns:
        bool: True if the post is allowed. Missing users and unknown tiers are denied.
    """
    return quota_denial_reason(user) is None


def quota_denial_reason(user: Optional[User]) -> Optional[str]:
    """
    Explain why a user may not publish, for event logs.

    Returns:
        Optional[str]: The reason, or None when publishing is allowed
    """
    if user is None:
        return "Campaign owner not found"

    tier = user.tier
    if tier == SubscriptionTier.PROFESSIONAL:
        return None

    if tier == SubscriptionTier.TRIAL:
        if user.total_posts_published < settings.TRIAL_POST_LIMIT:
            return None
        return (f"Trial limit reached ({user.total_posts_published}/"
                f"{settings.TRIAL_POST_LIMIT} lifetime posts)")

    if tier == SubscriptionTier.HOBBYIST:
        if user.posts_published_this_month < settings.HOBBYIST_MONTHLY_POST_LIMIT:
            return None
        return (f"Monthly limit reached ({user.posts_published_this_month}/"
                f"{settings.HOBBYIST_MONTHLY_POST_LIMIT} posts this month)")

    return f"Unknown subscription tier '{user.subscription_tier}'"
