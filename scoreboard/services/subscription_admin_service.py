import logging

from sqlalchemy import and_, func, not_, or_
from sqlalchemy.exc import SQLAlchemyError

from scoreboard.audit.logger import AuditAction, log_admin_action
from scoreboard.billing.lemonsqueezy import LemonSqueezyError
from scoreboard.billing.variant_mapping import DEFAULT_TIER_INTERVAL, resolve_variant
from scoreboard.domain.subscriptions import (
    ACTIVE_STATUSES,
    SubscriptionStatus,
    is_supporter,
    status_label,
)
from scoreboard.domain.tiers import BillingInterval, Tier
from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.models.subscription import Subscription
from scoreboard.models.user import ROLE_SYSTEM_ADMIN, User
from scoreboard.services.pricing_service import PricingService
from scoreboard.services.reconciliation_service import (
    SubscriptionReconciler,
    apply_remote_subscription,
    resolve_amount_cents,
)
from scoreboard.services.results import CONFLICT, GIFTED, INVALID, NOT_FOUND, NOT_LINKED, OperationResult
from scoreboard.services.supporter_service import SupporterService
from scoreboard.utils.timeutils import parse_datetime, utcnow

logger = logging.getLogger(__name__)

LIST_FILTERS = ("all", "active", "cancelled", "appreciation", "free")
MAX_PAGE_SIZE = 100


def _supporter_clause(now):
    """SQL form of the supporter rules, evaluated against the joined Subscription row."""
    return or_(
        and_(
            Subscription.is_gifted.is_(True),
            Subscription.gifted_expires_at.isnot(None),
            Subscription.gifted_expires_at > now,
        ),
        Subscription.status.in_(ACTIVE_STATUSES),
        and_(
            Subscription.status == SubscriptionStatus.CANCELLED.value,
            Subscription.cancelled_at.isnot(None),
            Subscription.cancelled_at > now,
        ),
    )


def _filter_clause(filter_name, now):
    if filter_name == "active":
        return and_(
            Subscription.id.isnot(None),
            Subscription.is_gifted.is_(False),
            Subscription.status.in_(ACTIVE_STATUSES),
        )
    if filter_name == "cancelled":
        return Subscription.status == SubscriptionStatus.CANCELLED.value
    if filter_name == "appreciation":
        return Subscription.is_gifted.is_(True)
    if filter_name == "free":
        return or_(Subscription.id.is_(None), not_(_supporter_clause(now)))
    return None


class SubscriptionAdminService:
    """Administrative subscription operations. Every mutation is audited."""

    def __init__(self, client=None, session=None):
        self.client = client
        self.session = session or db.session
        self.supporters = SupporterService(self.session)
        self.pricing = PricingService(self.session)

    def _reconciler(self):
        return SubscriptionReconciler(self.client, session=self.session, pricing=self.pricing)

    def _commit(self, what):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to persist {what}: {e}")
            raise PersistenceError(f"Failed to persist {what}") from e

    def _user_summary(self, user, subscription):
        return {
            'user': user.to_dict(),
            'subscription': subscription.to_dict() if subscription else None,
            'is_supporter': is_supporter(subscription, role=user.role),
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _latest_subscriptions(self):
        """Subquery of (user_id, subscription_id) for each user's authoritative row."""
        ranked = (
            self.session.query(
                Subscription.id.label('subscription_id'),
                Subscription.user_id.label('user_id'),
                func.row_number().over(
                    partition_by=Subscription.user_id,
                    order_by=(Subscription.updated_at.desc(), Subscription.created_at.desc()),
                ).label('position'),
            )
            .subquery()
        )
        return (
            self.session.query(ranked.c.user_id, ranked.c.subscription_id)
            .filter(ranked.c.position == 1)
            .subquery()
        )

    def list_users(self, search=None, filter_name="all", page=1, limit=20):
        if filter_name not in LIST_FILTERS:
            return OperationResult.failure(
                INVALID,
                f"Unknown filter '{filter_name}'. Expected one of: {', '.join(LIST_FILTERS)}"
            )
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or 20), 1), MAX_PAGE_SIZE)

        latest = self._latest_subscriptions()
        query = (
            self.session.query(User, Subscription)
            .outerjoin(latest, latest.c.user_id == User.id)
            .outerjoin(Subscription, Subscription.id == latest.c.subscription_id)
            .filter(User.role != ROLE_SYSTEM_ADMIN)
        )
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))
        clause = _filter_clause(filter_name, utcnow())
        if clause is not None:
            query = query.filter(clause)

        total = query.count()
        page_rows = (
            query.order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        reconciler = self._reconciler() if self.client is not None else None
        users = []
        for user, subscription in page_rows:
            if reconciler is not None:
                subscription = reconciler.sync_status(subscription)
            users.append(self._user_summary(user, subscription))

        return OperationResult.success({
            'users': users,
            'total': total,
            'page': page,
            'limit': limit,
            'total_pages': (total + limit - 1) // limit,
        })

    def get_user_detail(self, user_id):
        user = self.session.get(User, user_id)
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")
        subscription = self.supporters.latest_subscription(user.id)
        return OperationResult.success(self._user_summary(user, subscription))

    def refetch(self, admin_id, user_id):
        user = self.session.get(User, user_id)
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")
        subscription = self.supporters.latest_subscription(user.id)
        if subscription is None:
            return OperationResult.failure(NOT_FOUND, "No subscription found for this user")
        return self._reconciler().refetch(subscription, admin_id)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------
    def cancel(self, admin_id, user_id):
        user = self.session.get(User, user_id)
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")

        subscription = self.supporters.latest_subscription(user.id)
        if subscription is None:
            return OperationResult.failure(NOT_FOUND, "No subscription found for this user")
        if subscription.is_gifted:
            return OperationResult.failure(
                GIFTED,
                "Gifted subscriptions cannot be cancelled. Remove the appreciation tier instead."
            )
        if not subscription.external_subscription_id:
            return OperationResult.failure(
                NOT_LINKED,
                "This subscription is not linked to a billing provider record."
            )

        try:
            remote = self.client.cancel_subscription(subscription.external_subscription_id)
        except LemonSqueezyError as e:
            logger.warning(f"Cancel of {subscription.external_subscription_id} failed: {e.kind}")
            return OperationResult.failure(e.kind, e.message)

        previous_status = subscription.status
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.status_formatted = status_label(SubscriptionStatus.CANCELLED.value)
        # Entitlement runs to the end of the paid period when the provider reports it
        subscription.cancelled_at = (remote.ends_at if remote and remote.ends_at else None) or utcnow()
        self._commit(f"cancellation of subscription {subscription.id}")

        log_admin_action(
            admin_id,
            AuditAction.CANCEL_SUBSCRIPTION,
            target_user_id=user.id,
            details={
                'subscription_id': subscription.id,
                'external_subscription_id': subscription.external_subscription_id,
                'previous_status': previous_status,
                'tier': subscription.tier,
                'cancelled_at': subscription.cancelled_at.isoformat(),
            },
            session=self.session,
        )
        return OperationResult.success(subscription)

    # ------------------------------------------------------------------
    # Appreciation tier (gift)
    # ------------------------------------------------------------------
    def gift(self, admin_id, user_id, expires_at=None):
        try:
            expires = parse_datetime(expires_at)
        except (TypeError, ValueError):
            return OperationResult.failure(INVALID, "expires_at must be an ISO-8601 timestamp")
        if expires is not None and expires <= utcnow():
            return OperationResult.failure(INVALID, "expires_at must be in the future")

        user = self.session.get(User, user_id)
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")
        if user.is_admin:
            return OperationResult.failure(INVALID, "Admins already have supporter access")

        subscription = self.supporters.latest_subscription(user.id)
        if (
            subscription is not None
            and not subscription.is_gifted
            and subscription.status in ACTIVE_STATUSES
        ):
            return OperationResult.failure(
                CONFLICT,
                "User already has an active paid subscription"
            )

        if subscription is None or not subscription.is_gifted:
            subscription = Subscription(user_id=user.id)
            self.session.add(subscription)

        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.status_formatted = "Active (Gifted)"
        subscription.tier = Tier.APPRECIATION.value
        subscription.billing_interval = BillingInterval.MONTHLY.value
        subscription.amount_cents = 0
        subscription.currency = 'USD'
        subscription.is_gifted = True
        subscription.gifted_expires_at = expires
        subscription.cancelled_at = None
        subscription.updated_at = utcnow()
        self.supporters.record_grant(user, subscription)
        self._commit(f"appreciation tier for user {user.id}")

        log_admin_action(
            admin_id,
            AuditAction.GIFT_APPRECIATION_TIER,
            target_user_id=user.id,
            details={
                'subscription_id': subscription.id,
                'expires_at': expires.isoformat() if expires else None,
            },
            session=self.session,
        )
        return OperationResult.success(subscription)

    def remove_gift(self, admin_id, user_id):
        """Ends an appreciation tier. The row is kept and moved to expired."""
        user = self.session.get(User, user_id)
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")

        subscription = self.supporters.latest_subscription(user.id)
        if subscription is None or not subscription.is_gifted:
            return OperationResult.failure(NOT_FOUND, "User has no appreciation tier")

        now = utcnow()
        previous_expiry = subscription.gifted_expires_at
        subscription.status = SubscriptionStatus.EXPIRED.value
        subscription.status_formatted = status_label(SubscriptionStatus.EXPIRED.value)
        subscription.gifted_expires_at = now
        self._commit(f"removal of appreciation tier for user {user.id}")

        log_admin_action(
            admin_id,
            AuditAction.REMOVE_APPRECIATION_TIER,
            target_user_id=user.id,
            details={
                'subscription_id': subscription.id,
                'previous_expires_at': previous_expiry.isoformat() if previous_expiry else None,
            },
            session=self.session,
        )
        return OperationResult.success(subscription)

    # ------------------------------------------------------------------
    # Linking an existing provider subscription to a user
    # ------------------------------------------------------------------
    def _existing_link(self, external_subscription_id):
        return (
            self.session.query(Subscription)
            .filter(Subscription.external_subscription_id == str(external_subscription_id))
            .first()
        )

    def verify_link(self, external_subscription_id):
        """Preview what linking would record, without writing anything."""
        try:
            remote = self.client.get_subscription(external_subscription_id)
        except LemonSqueezyError as e:
            return OperationResult.failure(e.kind, e.message)

        mapping = resolve_variant(remote.variant_id, DEFAULT_TIER_INTERVAL)
        existing = self._existing_link(external_subscription_id)
        linked_user = self.session.get(User, existing.user_id) if existing else None

        return OperationResult.success({
            'external_subscription_id': remote.id,
            'status': remote.status,
            'status_formatted': remote.status_formatted,
            'customer_email': remote.user_email,
            'customer_name': remote.user_name,
            'variant_id': remote.variant_id,
            'tier': mapping.tier,
            'billing_interval': mapping.billing_interval,
            'amount_cents': resolve_amount_cents(
                remote.price_cents, mapping.tier, mapping.billing_interval, self.pricing
            ),
            'currency': remote.currency or 'USD',
            'renews_at': remote.renews_at.isoformat() if remote.renews_at else None,
            'already_linked': existing is not None,
            'linked_user': linked_user.to_dict() if linked_user else None,
        })

    def link(self, admin_id, user_id, external_subscription_id, override_email=False):
        user = self.session.get(User, user_id)
        if user is None:
            return OperationResult.failure(NOT_FOUND, "User not found")

        try:
            remote = self.client.get_subscription(external_subscription_id)
        except LemonSqueezyError as e:
            return OperationResult.failure(e.kind, e.message)

        remote_email = (remote.user_email or "").strip().lower()
        email_matches = remote_email == (user.email or "").strip().lower()
        if not email_matches and not override_email:
            return OperationResult.failure(
                INVALID,
                "Subscription email does not match the user's email",
                subscription_email=remote.user_email,
                user_email=user.email,
            )

        existing = self._existing_link(external_subscription_id)
        if existing is not None and existing.user_id != user.id:
            return OperationResult.failure(
                CONFLICT,
                "This subscription is already linked to another user"
            )

        mapping = resolve_variant(remote.variant_id, DEFAULT_TIER_INTERVAL)
        amount_cents = resolve_amount_cents(
            remote.price_cents, mapping.tier, mapping.billing_interval, self.pricing
        )

        subscription = existing
        if subscription is None:
            subscription = Subscription(user_id=user.id, is_gifted=False)
            self.session.add(subscription)
        apply_remote_subscription(subscription, remote, mapping, amount_cents)
        subscription.external_subscription_id = str(external_subscription_id)
        subscription.updated_at = utcnow()
        self.supporters.record_grant(user, subscription)
        self._commit(f"link of {external_subscription_id} to user {user.id}")

        log_admin_action(
            admin_id,
            AuditAction.LINK_SUBSCRIPTION,
            target_user_id=user.id,
            details={
                'subscription_id': subscription.id,
                'external_subscription_id': subscription.external_subscription_id,
                'tier': subscription.tier,
                'billing_interval': subscription.billing_interval,
                'status': subscription.status,
                'email_override_used': bool(override_email and not email_matches),
            },
            session=self.session,
        )
        return OperationResult.success(subscription)
