import logging

from scoreboard.domain.subscriptions import is_supporter
from scoreboard.extensions import db
from scoreboard.models.subscription import Subscription
from scoreboard.models.user import User

logger = logging.getLogger(__name__)


class SupporterService:
    """Loads the authoritative subscription row and evaluates supporter status."""

    def __init__(self, session=None):
        self.session = session or db.session

    def latest_subscription(self, user_id):
        return (
            self.session.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.updated_at.desc(), Subscription.created_at.desc())
            .first()
        )

    def is_supporter(self, user_or_id, now=None):
        user = user_or_id if isinstance(user_or_id, User) else self.session.get(User, user_or_id)
        if user is None:
            return False
        subscription = self.latest_subscription(user.id)
        return is_supporter(subscription, role=user.role, now=now)

    def record_grant(self, user, subscription, now=None):
        """Remember that ``user`` became a supporter so a later lapse is seen as a downgrade."""
        if is_supporter(subscription, role=user.role, now=now):
            user.was_supporter = True
