from scoreboard.extensions import db
from scoreboard.utils.timeutils import isoformat, utcnow


class TierPricing(db.Model):
    """Canonical price per (tier, interval), written only by the admin pricing sync."""

    __tablename__ = 'tier_pricing'

    id = db.Column(db.Integer, primary_key=True)
    tier = db.Column(db.String(20), nullable=False)
    billing_interval = db.Column(db.String(10), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default='USD')
    external_variant_id = db.Column(db.String(64), nullable=True)
    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('tier', 'billing_interval', name='uq_tier_pricing_tier_interval'),
    )

    def to_dict(self):
        return {
            'tier': self.tier,
            'billing_interval': self.billing_interval,
            'amount_cents': self.amount_cents,
            'currency': self.currency,
            'external_variant_id': self.external_variant_id,
            'last_synced_at': isoformat(self.last_synced_at),
        }
