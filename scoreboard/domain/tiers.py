from dataclasses import dataclass
from enum import Enum


class Tier(str, Enum):
    SUPPORTER = "supporter"
    CHAMPION = "champion"
    LEGEND = "legend"
    HALL_OF_FAMER = "hall_of_famer"
    APPRECIATION = "appreciation"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class TierDetails:
    tier: Tier
    label: str
    emoji: str
    monthly: int
    yearly: int


# Seed prices in whole dollars. The synced tier_pricing table is authoritative once populated.
TIER_PRICES = {
    Tier.SUPPORTER: TierDetails(Tier.SUPPORTER, "Supporter", "🙌", monthly=4, yearly=40),
    Tier.CHAMPION: TierDetails(Tier.CHAMPION, "Champion", "🏆", monthly=8, yearly=80),
    Tier.LEGEND: TierDetails(Tier.LEGEND, "Legend", "🌟", monthly=23, yearly=230),
    Tier.HALL_OF_FAMER: TierDetails(Tier.HALL_OF_FAMER, "Hall of Famer", "👑", monthly=48, yearly=480),
    Tier.APPRECIATION: TierDetails(Tier.APPRECIATION, "Appreciation", "🎁", monthly=0, yearly=0),
}

PAID_TIERS = tuple(tier for tier in Tier if tier != Tier.APPRECIATION)

DEFAULT_TIER = Tier.SUPPORTER
DEFAULT_INTERVAL = BillingInterval.MONTHLY


def _coerce_tier(tier):
    if isinstance(tier, Tier):
        return tier
    try:
        return Tier(tier)
    except ValueError:
        return None


def _coerce_interval(interval):
    if isinstance(interval, BillingInterval):
        return interval
    try:
        return BillingInterval(interval)
    except ValueError:
        return None


def is_valid_tier(tier):
    return _coerce_tier(tier) is not None


def is_valid_interval(interval):
    return _coerce_interval(interval) is not None


def get_tier_details(tier):
    return TIER_PRICES.get(_coerce_tier(tier))


def get_tier_price(tier, interval):
    """Price in dollars. Unknown tiers price as the base supporter plan."""
    details = get_tier_details(tier) or TIER_PRICES[DEFAULT_TIER]
    if _coerce_interval(interval) == BillingInterval.YEARLY:
        return details.yearly
    return details.monthly


def get_tier_price_cents(tier, interval):
    return get_tier_price(tier, interval) * 100


def get_tier_label(tier):
    details = get_tier_details(tier)
    return details.label if details else TIER_PRICES[DEFAULT_TIER].label


def get_tier_emoji(tier):
    details = get_tier_details(tier)
    return details.emoji if details else TIER_PRICES[DEFAULT_TIER].emoji


def get_monthly_equivalent(yearly_price):
    return round(yearly_price / 12)


def tier_catalog():
    """Static price list for display."""
    return [
        {
            'tier': details.tier.value,
            'label': details.label,
            'emoji': details.emoji,
            'monthly': details.monthly,
            'yearly': details.yearly,
            'yearly_monthly_equivalent': get_monthly_equivalent(details.yearly),
        }
        for details in TIER_PRICES.values()
    ]
