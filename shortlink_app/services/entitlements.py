"""
Plan tiers and the capabilities they unlock.

Every plan check in the codebase goes through ``is_premium``.
"""

from enum import Enum


class PlanTier(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


# Link fields that only premium owners may set
PREMIUM_LINK_FIELDS = frozenset({
    "custom_alias",
    "expires_at",
    "activates_at",
    "password",
    "device_urls",
})


def parse_plan(value) -> PlanTier:
    """Unknown or missing plans degrade to FREE"""
    if isinstance(value, PlanTier):
        return value
    try:
        return PlanTier(str(value).upper())
    except ValueError:
        return PlanTier.FREE


def is_premium(plan: PlanTier) -> bool:
    """PRO and ENTERPRISE are equivalent for every gated feature"""
    return parse_plan(plan) != PlanTier.FREE


def consumes_credits(plan: PlanTier) -> bool:
    """ENTERPRISE generation is unmetered"""
    return parse_plan(plan) != PlanTier.ENTERPRISE
