"""
Mapping between LemonSqueezy variant ids and (tier, billing interval).

Variant ids are configured per environment. Lookups return ``None`` for
unknown ids; callers that want a fallback ask for one explicitly.
"""

from dataclasses import dataclass

from flask import current_app

from scoreboard.domain.tiers import PAID_TIERS, BillingInterval, Tier


@dataclass(frozen=True)
class TierInterval:
    tier: str
    billing_interval: str


@dataclass(frozen=True)
class VariantConfig:
    tier: str
    billing_interval: str
    variant_id: str
    setting: str


DEFAULT_TIER_INTERVAL = TierInterval(Tier.SUPPORTER.value, BillingInterval.MONTHLY.value)


def variant_setting_name(tier, interval):
    tier = Tier(tier)
    interval = BillingInterval(interval)
    return f"LEMONSQUEEZY_{interval.value.upper()}_{tier.value.upper()}_VARIANT_ID"


def get_all_variant_configs(config=None):
    """Every paid (tier, interval) pair with its configured variant id ('' when unset)."""
    config = config if config is not None else current_app.config
    configs = []
    for tier in PAID_TIERS:
        for interval in BillingInterval:
            setting = variant_setting_name(tier, interval)
            configs.append(VariantConfig(
                tier=tier.value,
                billing_interval=interval.value,
                variant_id=str(config.get(setting) or ""),
                setting=setting,
            ))
    return configs


def map_variant_to_tier_and_interval(variant_id, config=None):
    """Return the TierInterval for a variant id, or None when it is not configured."""
    if variant_id is None or str(variant_id).strip() == "":
        return None
    wanted = str(variant_id).strip()
    for variant in get_all_variant_configs(config):
        if variant.variant_id and variant.variant_id == wanted:
            return TierInterval(variant.tier, variant.billing_interval)
    return None


def resolve_variant(variant_id, default, config=None):
    """Like map_variant_to_tier_and_interval but with a caller-chosen fallback."""
    mapping = map_variant_to_tier_and_interval(variant_id, config)
    return mapping if mapping is not None else default


def get_variant_id(tier, interval, config=None):
    """Variant id for a paid tier and interval, or None when unknown/unset."""
    try:
        setting = variant_setting_name(tier, interval)
    except ValueError:
        return None
    if Tier(tier) == Tier.APPRECIATION:
        return None
    config = config if config is not None else current_app.config
    return str(config.get(setting) or "") or None
