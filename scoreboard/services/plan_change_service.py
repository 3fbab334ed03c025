import logging

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.billing.lemonsqueezy import LemonSqueezyError
from scoreboard.billing.variant_mapping import TierInterval, get_variant_id
from scoreboard.domain.tiers import get_tier_price_cents, is_valid_interval, is_valid_tier
from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.services.reconciliation_service import apply_remote_subscription
from scoreboard.services.results import GIFTED, INVALID, NOT_FOUND, NOT_LINKED, OperationResult
from scoreboard.services.supporter_service import SupporterService

logger = logging.getLogger(__name__)


class PlanChangeService:
    """Moves a user's own paid subscription to another tier or interval."""

    def __init__(self, client, session=None):
        self.client = client
        self.session = session or db.session

    def change_plan(self, user, tier, billing_interval):
        if not is_valid_tier(tier) or not is_valid_interval(billing_interval):
            return OperationResult.failure(INVALID, "Unknown tier or billing interval")

        variant_id = get_variant_id(tier, billing_interval)
        if variant_id is None:
            return OperationResult.failure(INVALID, f"No plan is configured for {tier} ({billing_interval})")

        subscription = SupporterService(self.session).latest_subscription(user.id)
        if subscription is None:
            return OperationResult.failure(NOT_FOUND, "No subscription found")
        if subscription.is_gifted:
            return OperationResult.failure(GIFTED, "Gifted subscriptions cannot change plan")
        if not subscription.external_subscription_id:
            return OperationResult.failure(NOT_LINKED, "Subscription is not linked to a billing record")

        try:
            remote = self.client.update_subscription_variant(
                subscription.external_subscription_id, variant_id
            )
        except LemonSqueezyError as e:
            logger.warning(f"Plan change for user {user.id} failed at provider: {e.kind}")
            return OperationResult.failure(e.kind, e.message)

        amount_cents = remote.price_cents
        if amount_cents is None:
            amount_cents = get_tier_price_cents(tier, billing_interval)

        apply_remote_subscription(subscription, remote, TierInterval(tier, billing_interval), amount_cents)
        subscription.external_variant_id = variant_id
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to persist plan change for {user.id}") from e

        logger.info(f"User {user.id} changed plan to {tier}/{billing_interval}")
        return OperationResult.success(subscription)
