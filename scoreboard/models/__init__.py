from scoreboard.models.user import User
from scoreboard.models.subscription import Subscription
from scoreboard.models.tier_pricing import TierPricing
from scoreboard.models.scoreboard import Scoreboard, ScoreboardEntry, KioskConfig
from scoreboard.models.audit_log import AdminAuditLog

__all__ = [
    'User',
    'Subscription',
    'TierPricing',
    'Scoreboard',
    'ScoreboardEntry',
    'KioskConfig',
    'AdminAuditLog',
]
