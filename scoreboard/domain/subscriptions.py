import logging
from enum import Enum

from scoreboard.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    UNPAID = "unpaid"


ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})

STATUS_LABELS = {
    SubscriptionStatus.ACTIVE.value: "Active",
    SubscriptionStatus.TRIALING.value: "Trial",
    SubscriptionStatus.PAST_DUE.value: "Past Due",
    SubscriptionStatus.PAUSED.value: "Paused",
    SubscriptionStatus.EXPIRED.value: "Expired",
    SubscriptionStatus.CANCELLED.value: "Cancelled",
    SubscriptionStatus.UNPAID.value: "Unpaid",
}

# Provider statuses that differ from ours
_PROVIDER_STATUS_ALIASES = {
    "on_trial": SubscriptionStatus.TRIALING.value,
}

ADMIN_ROLE = "system_admin"


def normalize_status(raw_status):
    """
    Map a billing provider status onto the local status set.

    Unrecognised values fall back to ``active`` so that a provider-side
    schema change does not lock paying users out. This is a fail-open
    policy and is logged every time it triggers.
    """
    value = (raw_status or "").strip().lower()
    if value in _PROVIDER_STATUS_ALIASES:
        return _PROVIDER_STATUS_ALIASES[value]
    if value in STATUS_LABELS:
        return value
    logger.warning(f"Unrecognised subscription status '{raw_status}', treating as active")
    return SubscriptionStatus.ACTIVE.value


def status_label(status):
    return STATUS_LABELS.get(status, str(status or "").replace("_", " ").title())


def is_supporter_subscription(subscription, now=None):
    """
    Decide whether a subscription row grants supporter privileges.

    Rules are evaluated in order, first match wins:
      1. gifted with an expiry strictly in the future
      2. status active or trialing
      3. status cancelled with cancelled_at strictly in the future
    """
    if subscription is None:
        return False

    now = as_utc(now) if now else utcnow()

    gifted_expires_at = as_utc(subscription.gifted_expires_at)
    if subscription.is_gifted and gifted_expires_at and gifted_expires_at > now:
        return True

    if subscription.status in ACTIVE_STATUSES:
        return True

    cancelled_at = as_utc(subscription.cancelled_at)
    if subscription.status == SubscriptionStatus.CANCELLED.value and cancelled_at and cancelled_at > now:
        return True

    return False


def is_supporter(subscription, role=None, now=None):
    """Supporter verdict for an account; admins are always supporters."""
    if role == ADMIN_ROLE:
        return True
    return is_supporter_subscription(subscription, now=now)


def gift_has_lapsed(subscription, now=None):
    expires_at = as_utc(subscription.gifted_expires_at)
    if not subscription.is_gifted or not expires_at:
        return False
    return expires_at <= (as_utc(now) if now else utcnow())
