import logging

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.billing.lemonsqueezy import LemonSqueezyError, parse_subscription
from scoreboard.billing.variant_mapping import map_variant_to_tier_and_interval
from scoreboard.domain.tiers import get_tier_price_cents
from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.models.subscription import Subscription
from scoreboard.models.user import User
from scoreboard.services.pricing_service import PricingService
from scoreboard.services.reconciliation_service import apply_remote_subscription
from scoreboard.services.results import INVALID, NOT_FOUND, OperationResult
from scoreboard.services.supporter_service import SupporterService
from scoreboard.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = (
    "subscription_created",
    "subscription_updated",
    "subscription_cancelled",
    "subscription_resumed",
    "subscription_expired",
    "subscription_paused",
    "subscription_unpaused",
    "subscription_payment_success",
    "subscription_payment_failed",
    "subscription_payment_recovered",
)


class WebhookService:
    """Applies LemonSqueezy webhook events to local subscription rows."""

    def __init__(self, session=None):
        self.session = session or db.session
        self.pricing = PricingService(self.session)

    def handle_event(self, payload):
        meta = payload.get("meta") or {}
        event_name = meta.get("event_name")
        user_id = (meta.get("custom_data") or {}).get("user_id")
        data_type = (payload.get("data") or {}).get("type")

        if not event_name:
            return OperationResult.failure(INVALID, "Missing event name")
        if not user_id:
            return OperationResult.failure(INVALID, "Missing user_id in custom data")

        if data_type != "subscriptions" or event_name not in SUBSCRIPTION_EVENTS:
            logger.info(f"Ignoring webhook event {event_name} ({data_type})")
            return OperationResult.success(None, ignored=True, event=event_name)

        try:
            remote = parse_subscription(payload)
        except LemonSqueezyError as e:
            return OperationResult.failure(INVALID, e.message)

        mapping = map_variant_to_tier_and_interval(remote.variant_id)
        if mapping is None:
            logger.error(f"Webhook {event_name} references unknown variant {remote.variant_id}")
            return OperationResult.failure(INVALID, f"Unknown variant id: {remote.variant_id}")

        user = self.session.get(User, str(user_id))
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")

        amount_cents = remote.price_cents
        if amount_cents is None:
            amount_cents = self.pricing.get_price_cents(mapping.tier, mapping.billing_interval)
        if amount_cents is None:
            amount_cents = get_tier_price_cents(mapping.tier, mapping.billing_interval)

        subscription = (
            self.session.query(Subscription)
            .filter(Subscription.external_subscription_id == remote.id)
            .first()
        )
        if subscription is None:
            subscription = Subscription(user_id=user.id, is_gifted=False, created_at=remote.created_at or utcnow())
            self.session.add(subscription)
        elif subscription.user_id != user.id:
            logger.warning(
                f"Webhook for {remote.id} names user {user.id} but row belongs to {subscription.user_id}"
            )

        apply_remote_subscription(subscription, remote, mapping, amount_cents)
        SupporterService(self.session).record_grant(user, subscription)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Failed to persist webhook {event_name} for {remote.id}") from e

        logger.info(
            f"Processed {event_name} for subscription {remote.id}",
            extra={"user_id": user.id, "status": subscription.status}
        )
        return OperationResult.success(subscription, event=event_name)
