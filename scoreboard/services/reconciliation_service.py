"""
Reconciliation of local subscription rows with LemonSqueezy.

The provider is the source of truth: a refetch overwrites the local row
with what the provider reports. Provider failures leave the row untouched
and come back as typed failures; store failures raise PersistenceError.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.audit.logger import AuditAction, log_admin_action
from scoreboard.billing.lemonsqueezy import LemonSqueezyError
from scoreboard.billing.variant_mapping import TierInterval, map_variant_to_tier_and_interval
from scoreboard.domain.subscriptions import SubscriptionStatus, gift_has_lapsed, normalize_status, status_label
from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.models.user import User
from scoreboard.services.pricing_service import PricingService
from scoreboard.services.results import GIFTED, NOT_LINKED, OperationResult
from scoreboard.services.supporter_service import SupporterService

logger = logging.getLogger(__name__)


def resolve_amount_cents(remote_price_cents, tier, billing_interval, pricing):
    """Provider price, else the synced tier price, else 0. Never fails."""
    if remote_price_cents is not None:
        return remote_price_cents
    synced = pricing.get_price_cents(tier, billing_interval)
    if synced is not None:
        return synced
    logger.warning(f"No price available for {tier}/{billing_interval}, recording 0")
    return 0


def apply_remote_subscription(subscription, remote, tier_interval, amount_cents):
    """Copy provider state onto a local row, keeping local values where the provider is silent."""
    status = normalize_status(remote.status)

    subscription.status = status
    subscription.status_formatted = remote.status_formatted or status_label(status)
    subscription.tier = tier_interval.tier
    subscription.billing_interval = tier_interval.billing_interval
    subscription.amount_cents = amount_cents
    subscription.currency = remote.currency or subscription.currency or 'USD'
    subscription.external_subscription_id = remote.id or subscription.external_subscription_id
    subscription.external_variant_id = remote.variant_id or subscription.external_variant_id
    subscription.external_customer_id = remote.customer_id or subscription.external_customer_id
    subscription.external_order_id = remote.order_id or subscription.external_order_id
    subscription.external_product_id = remote.product_id or subscription.external_product_id
    subscription.card_brand = remote.card_brand or subscription.card_brand
    subscription.card_last_four = remote.card_last_four or subscription.card_last_four
    subscription.payment_processor = remote.payment_processor or subscription.payment_processor
    subscription.test_mode = remote.test_mode
    subscription.renews_at = remote.renews_at or subscription.renews_at
    subscription.current_period_end = remote.renews_at or remote.ends_at or subscription.current_period_end
    subscription.cancelled_at = remote.ends_at if remote.cancelled else None
    subscription.customer_portal_url = remote.customer_portal_url or subscription.customer_portal_url
    subscription.update_payment_method_url = (
        remote.update_payment_method_url or subscription.update_payment_method_url
    )
    subscription.customer_portal_update_subscription_url = (
        remote.customer_portal_update_subscription_url
        or subscription.customer_portal_update_subscription_url
    )
    return subscription


class SubscriptionReconciler:

    def __init__(self, client, session=None, pricing=None):
        self.client = client
        self.session = session or db.session
        self.pricing = pricing or PricingService(self.session)

    def _commit(self, subscription):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to persist subscription {subscription.id}: {e}")
            raise PersistenceError(f"Failed to persist subscription {subscription.id}") from e

    def refetch(self, subscription, admin_id):
        """Overwrite ``subscription`` with the provider's current state and audit the change."""
        if subscription.is_gifted:
            return OperationResult.failure(
                GIFTED,
                "Gifted subscriptions have no billing record to refetch."
            )
        if not subscription.external_subscription_id:
            return OperationResult.failure(
                NOT_LINKED,
                "This subscription is not linked to a billing provider record."
            )

        try:
            remote = self.client.get_subscription(subscription.external_subscription_id)
        except LemonSqueezyError as e:
            logger.warning(
                f"Refetch of {subscription.external_subscription_id} failed: {e.kind}",
                extra={"subscription_id": subscription.id}
            )
            return OperationResult.failure(e.kind, e.message)

        previous = {
            'status': subscription.status,
            'tier': subscription.tier,
            'billing_interval': subscription.billing_interval,
        }

        mapping = map_variant_to_tier_and_interval(remote.variant_id)
        if mapping is None:
            logger.warning(
                f"Variant {remote.variant_id} is not mapped, keeping "
                f"{subscription.tier}/{subscription.billing_interval}"
            )
            mapping = TierInterval(subscription.tier, subscription.billing_interval)

        amount_cents = resolve_amount_cents(
            remote.price_cents, mapping.tier, mapping.billing_interval, self.pricing
        )
        apply_remote_subscription(subscription, remote, mapping, amount_cents)
        owner = self.session.get(User, subscription.user_id)
        if owner is not None:
            SupporterService(self.session).record_grant(owner, subscription)
        self._commit(subscription)

        current = {
            'status': subscription.status,
            'tier': subscription.tier,
            'billing_interval': subscription.billing_interval,
        }
        log_admin_action(
            admin_id,
            AuditAction.REFETCH_SUBSCRIPTION,
            target_user_id=subscription.user_id,
            details={
                'subscription_id': subscription.id,
                'external_subscription_id': subscription.external_subscription_id,
                'previous_status': previous['status'],
                'new_status': current['status'],
                'previous_tier': previous['tier'],
                'new_tier': current['tier'],
                'previous_billing_interval': previous['billing_interval'],
                'new_billing_interval': current['billing_interval'],
            },
            session=self.session,
        )
        return OperationResult.success(subscription, previous=previous, changed=previous != current)

    def sync_status(self, subscription):
        """
        Best-effort status refresh used when listing subscriptions.
        Only status fields are touched, only when they changed.
        """
        if subscription is None:
            return None

        if subscription.is_gifted:
            if gift_has_lapsed(subscription) and subscription.status != SubscriptionStatus.EXPIRED.value:
                subscription.status = SubscriptionStatus.EXPIRED.value
                subscription.status_formatted = status_label(SubscriptionStatus.EXPIRED.value)
                self._commit_best_effort(subscription)
            return subscription

        if not subscription.external_subscription_id:
            return subscription

        try:
            remote = self.client.get_subscription(subscription.external_subscription_id)
        except LemonSqueezyError as e:
            logger.info(f"Status sync skipped for {subscription.id}: {e.kind}")
            return subscription

        status = normalize_status(remote.status)
        status_formatted = remote.status_formatted or status_label(status)
        if status != subscription.status or status_formatted != subscription.status_formatted:
            subscription.status = status
            subscription.status_formatted = status_formatted
            self._commit_best_effort(subscription)
        return subscription

    def _commit_best_effort(self, subscription):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(f"Status sync could not persist subscription {subscription.id}: {e}")
