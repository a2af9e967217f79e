"""Tier and credit package pricing

Pure lookup tables. Judge payouts are read from here once, when an earning
is recorded, and stored on the earning row.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class VerdictTier:
    name: str
    verdicts: int
    credits: int
    judge_payout_cents: int
    description: str


@dataclass(frozen=True)
class CreditPackage:
    package_id: str
    name: str
    credits: int
    price_cents: int


VERDICT_TIERS: dict[str, VerdictTier] = {
    "basic": VerdictTier("basic", 3, 1, 50, "3 honest opinions - Fast & affordable"),
    "standard": VerdictTier("standard", 5, 2, 55, "5 honest opinions - Most popular"),
    "premium": VerdictTier("premium", 7, 3, 60, "7 honest opinions - Comprehensive"),
}

DEFAULT_TIER = "basic"

CREDIT_PACKAGES: dict[str, CreditPackage] = {
    "starter": CreditPackage("starter", "Starter", 5, 1745),
    "popular": CreditPackage("popular", "Popular", 10, 3490),
    "value": CreditPackage("value", "Value", 25, 8725),
    "pro": CreditPackage("pro", "Pro", 50, 17450),
}


def get_tier(name: str | None) -> VerdictTier:
    """Tier by name; unknown or missing names fall back to basic"""
    if name and name in VERDICT_TIERS:
        return VERDICT_TIERS[name]
    return VERDICT_TIERS[DEFAULT_TIER]


def tier_for_target_count(count: int) -> VerdictTier:
    for tier in VERDICT_TIERS.values():
        if tier.verdicts == count:
            return tier
    return VERDICT_TIERS[DEFAULT_TIER]


def payout_cents_for_target(count: int) -> int:
    return tier_for_target_count(count).judge_payout_cents


def get_credit_package(package_id: str) -> CreditPackage | None:
    return CREDIT_PACKAGES.get(package_id)


def cents_to_dollars(cents: int) -> float:
    return round(cents / 100.0, 2)
