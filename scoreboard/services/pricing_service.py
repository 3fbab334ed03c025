import logging

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.audit.logger import AuditAction, log_admin_action
from scoreboard.billing.lemonsqueezy import LemonSqueezyError
from scoreboard.billing.variant_mapping import get_all_variant_configs
from scoreboard.domain.tiers import TIER_PRICES, Tier, get_tier_price_cents
from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.models.tier_pricing import TierPricing
from scoreboard.utils.timeutils import isoformat, utcnow

logger = logging.getLogger(__name__)


class PricingService:
    """Reads canonical tier prices and refreshes them from the billing provider."""

    def __init__(self, session=None):
        self.session = session or db.session

    def get_pricing_row(self, tier, billing_interval):
        return (
            self.session.query(TierPricing)
            .filter_by(tier=tier, billing_interval=billing_interval)
            .first()
        )

    def get_price_cents(self, tier, billing_interval):
        """Synced price in cents, or None when this pair has never been synced."""
        row = self.get_pricing_row(tier, billing_interval)
        return row.amount_cents if row else None

    def get_all_prices(self):
        """Synced prices keyed by tier, falling back to the static seed table per pair."""
        rows = {
            (row.tier, row.billing_interval): row
            for row in self.session.query(TierPricing).all()
        }
        prices = []
        for tier, details in TIER_PRICES.items():
            if tier == Tier.APPRECIATION:
                continue
            entry = {'tier': tier.value, 'label': details.label, 'emoji': details.emoji}
            for interval in ('monthly', 'yearly'):
                row = rows.get((tier.value, interval))
                entry[interval] = {
                    'amount_cents': row.amount_cents if row else get_tier_price_cents(tier, interval),
                    'currency': row.currency if row else 'USD',
                    'last_synced_at': isoformat(row.last_synced_at) if row else None,
                }
            prices.append(entry)
        return prices

    def sync_from_provider(self, client, admin_id):
        """
        Fetch every configured paid variant and upsert its price.
        Per-variant provider failures are collected, not raised.
        """
        synced = 0
        skipped = 0
        changes = []
        errors = []
        now = utcnow()

        for config in get_all_variant_configs():
            if not config.variant_id:
                skipped += 1
                continue

            try:
                variant = client.get_variant(config.variant_id)
            except LemonSqueezyError as e:
                errors.append({
                    'tier': config.tier,
                    'billing_interval': config.billing_interval,
                    'variant_id': config.variant_id,
                    'error': e.kind,
                })
                continue

            if variant.price_cents is None:
                errors.append({
                    'tier': config.tier,
                    'billing_interval': config.billing_interval,
                    'variant_id': config.variant_id,
                    'error': 'missing_price',
                })
                continue

            row = self.get_pricing_row(config.tier, config.billing_interval)
            previous = row.amount_cents if row else None
            if previous != variant.price_cents:
                changes.append({
                    'tier': config.tier,
                    'billing_interval': config.billing_interval,
                    'old_amount_cents': previous,
                    'new_amount_cents': variant.price_cents,
                })

            if row is None:
                row = TierPricing(tier=config.tier, billing_interval=config.billing_interval)
                self.session.add(row)
            row.amount_cents = variant.price_cents
            row.currency = 'USD'
            row.external_variant_id = config.variant_id
            row.last_synced_at = now
            synced += 1

        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Pricing sync failed to persist: {e}")
            raise PersistenceError("Failed to save synced pricing") from e

        summary = {
            'synced_count': synced,
            'skipped_count': skipped,
            'changes_count': len(changes),
            'price_changes': changes,
            'errors': errors,
        }
        logger.info(
            f"Pricing sync complete: {synced} synced, {skipped} skipped, {len(changes)} changed",
            extra={'errors': len(errors)}
        )
        log_admin_action(admin_id, AuditAction.SYNC_PRICING, details=summary, session=self.session)
        return summary
