import logging
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.extensions import db
from scoreboard.models.audit_log import AdminAuditLog

logger = logging.getLogger("audit")

MAX_PAGE_SIZE = 100


class AuditAction(str, Enum):
    CANCEL_SUBSCRIPTION = "cancel_subscription"
    LINK_SUBSCRIPTION = "link_subscription"
    GIFT_APPRECIATION_TIER = "gift_appreciation_tier"
    REMOVE_APPRECIATION_TIER = "remove_appreciation_tier"
    REFETCH_SUBSCRIPTION = "refetch_subscription"
    SYNC_PRICING = "sync_pricing"


ACTION_LABELS = {
    AuditAction.CANCEL_SUBSCRIPTION: "Cancelled Subscription",
    AuditAction.LINK_SUBSCRIPTION: "Linked Subscription",
    AuditAction.GIFT_APPRECIATION_TIER: "Gifted Appreciation Tier",
    AuditAction.REMOVE_APPRECIATION_TIER: "Removed Appreciation Tier",
    AuditAction.REFETCH_SUBSCRIPTION: "Refetched Subscription",
    AuditAction.SYNC_PRICING: "Synced pricing from LemonSqueezy",
}


def format_action_label(action):
    try:
        return ACTION_LABELS[AuditAction(action)]
    except ValueError:
        return str(action).replace("_", " ").title()


def log_admin_action(admin_id, action, target_user_id=None, details=None, session=None):
    """
    Append one audit row. Best-effort: a failed write is logged and rolled
    back, never raised, so it cannot undo the mutation it describes.
    """
    session = session or db.session
    action_value = action.value if isinstance(action, AuditAction) else str(action)

    entry = AdminAuditLog(
        admin_id=admin_id,
        action=action_value,
        action_label=format_action_label(action_value),
        target_user_id=target_user_id,
        details=details or {},
    )
    try:
        session.add(entry)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(
            f"Failed to write audit entry {action_value} by {admin_id}: {e}",
            extra={"target_user_id": target_user_id}
        )
        return None

    logger.info(
        f"{action_value} by admin {admin_id}",
        extra={"target_user_id": target_user_id, "audit_id": entry.id}
    )
    return entry


def list_audit_log(page=1, limit=50, session=None):
    """Newest-first page of audit entries with display labels."""
    session = session or db.session
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 50), 1), MAX_PAGE_SIZE)

    query = session.query(AdminAuditLog)
    total = query.count()
    rows = (
        query.order_by(AdminAuditLog.created_at.desc(), AdminAuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    entries = []
    for row in rows:
        data = row.to_dict()
        data['action_label'] = format_action_label(row.action)
        entries.append(data)

    return {
        'entries': entries,
        'total': total,
        'page': page,
        'limit': limit,
        'total_pages': (total + limit - 1) // limit,
    }
