import uuid

from sqlalchemy import CheckConstraint, Index

from scoreboard.domain.subscriptions import STATUS_LABELS, is_supporter_subscription
from scoreboard.domain.tiers import BillingInterval, Tier
from scoreboard.extensions import db
from scoreboard.utils.timeutils import isoformat, utcnow


def _in_clause(column, values):
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Subscription(db.Model):
    """
    One row per user/provider relationship. Rows are never deleted:
    they move to ``cancelled`` or ``expired`` instead. The most recently
    updated row for a user is the authoritative one.
    """

    __tablename__ = 'subscriptions'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.String(36),
        db.ForeignKey('user_profiles.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )

    status = db.Column(db.String(20), nullable=False, default='active')
    status_formatted = db.Column(db.String(50), nullable=True)
    tier = db.Column(db.String(20), nullable=False, default=Tier.SUPPORTER.value)
    billing_interval = db.Column(db.String(10), nullable=False, default=BillingInterval.MONTHLY.value)

    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default='USD')

    is_gifted = db.Column(db.Boolean, nullable=False, default=False)
    gifted_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Entitlement continues until this moment even when status == cancelled
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    renews_at = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)

    # Billing provider references (opaque)
    external_subscription_id = db.Column(db.String(64), unique=True, nullable=True, index=True)
    external_customer_id = db.Column(db.String(64), nullable=True)
    external_variant_id = db.Column(db.String(64), nullable=True)
    external_order_id = db.Column(db.String(64), nullable=True)
    external_product_id = db.Column(db.String(64), nullable=True)

    card_brand = db.Column(db.String(32), nullable=True)
    card_last_four = db.Column(db.String(4), nullable=True)
    payment_processor = db.Column(db.String(32), nullable=True)
    test_mode = db.Column(db.Boolean, nullable=False, default=False)

    customer_portal_url = db.Column(db.Text, nullable=True)
    update_payment_method_url = db.Column(db.Text, nullable=True)
    customer_portal_update_subscription_url = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = db.relationship('User', backref=db.backref('subscriptions', lazy='dynamic'))

    __table_args__ = (
        CheckConstraint(_in_clause('status', STATUS_LABELS), name='ck_subscriptions_status'),
        CheckConstraint(_in_clause('tier', [t.value for t in Tier]), name='ck_subscriptions_tier'),
        CheckConstraint(
            _in_clause('billing_interval', [i.value for i in BillingInterval]),
            name='ck_subscriptions_billing_interval'
        ),
        CheckConstraint('amount_cents >= 0', name='ck_subscriptions_amount_non_negative'),
        Index('idx_subscriptions_user_updated', 'user_id', 'updated_at'),
    )

    def is_supporter(self, now=None):
        return is_supporter_subscription(self, now=now)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'status': self.status,
            'status_formatted': self.status_formatted,
            'tier': self.tier,
            'billing_interval': self.billing_interval,
            'amount_cents': self.amount_cents,
            'currency': self.currency,
            'is_gifted': self.is_gifted,
            'gifted_expires_at': isoformat(self.gifted_expires_at),
            'cancelled_at': isoformat(self.cancelled_at),
            'renews_at': isoformat(self.renews_at),
            'current_period_start': isoformat(self.current_period_start),
            'current_period_end': isoformat(self.current_period_end),
            'external_subscription_id': self.external_subscription_id,
            'external_customer_id': self.external_customer_id,
            'external_variant_id': self.external_variant_id,
            'external_order_id': self.external_order_id,
            'card_brand': self.card_brand,
            'card_last_four': self.card_last_four,
            'payment_processor': self.payment_processor,
            'test_mode': self.test_mode,
            'customer_portal_url': self.customer_portal_url,
            'update_payment_method_url': self.update_payment_method_url,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Subscription {self.id} user={self.user_id} status={self.status} tier={self.tier}>"
