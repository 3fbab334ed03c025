import pytest
from unittest.mock import Mock

from sqlalchemy.exc import OperationalError

from scoreboard.audit import AuditAction, format_action_label, list_audit_log, log_admin_action
from scoreboard.extensions import db
from scoreboard.models import AdminAuditLog
from scoreboard.models.audit_log import AuditLogImmutableError

pytestmark = pytest.mark.db


@pytest.mark.parametrize("action, label", [
    (AuditAction.CANCEL_SUBSCRIPTION, "Cancelled Subscription"),
    ("link_subscription", "Linked Subscription"),
    ("gift_appreciation_tier", "Gifted Appreciation Tier"),
    ("remove_appreciation_tier", "Removed Appreciation Tier"),
    ("refetch_subscription", "Refetched Subscription"),
    ("sync_pricing", "Synced pricing from LemonSqueezy"),
    ("rotate_api_key", "Rotate Api Key"),
])
def test_action_labels(action, label):
    assert format_action_label(action) == label


def test_log_admin_action_persists_entry(app, admin, user):
    entry = log_admin_action(admin.id, AuditAction.LINK_SUBSCRIPTION, target_user_id=user.id,
                             details={'external_subscription_id': '98765'})

    stored = db.session.get(AdminAuditLog, entry.id)
    assert stored.action == 'link_subscription'
    assert stored.action_label == 'Linked Subscription'
    assert stored.details == {'external_subscription_id': '98765'}
    assert stored.to_dict()['target_user_email'] == user.email


def test_failed_write_is_swallowed(app, admin):
    session = Mock()
    session.commit.side_effect = OperationalError('INSERT', {}, Exception('disk full'))

    assert log_admin_action(admin.id, AuditAction.SYNC_PRICING, session=session) is None
    session.rollback.assert_called_once()


def test_entries_cannot_be_modified(app, admin):
    entry = log_admin_action(admin.id, AuditAction.SYNC_PRICING)

    entry.action = 'tampered'
    with pytest.raises(AuditLogImmutableError):
        db.session.commit()
    db.session.rollback()


def test_entries_cannot_be_deleted(app, admin):
    entry = log_admin_action(admin.id, AuditAction.SYNC_PRICING)

    db.session.delete(entry)
    with pytest.raises(AuditLogImmutableError):
        db.session.commit()
    db.session.rollback()


def test_listing_pages_are_capped(app, admin):
    for _ in range(3):
        log_admin_action(admin.id, AuditAction.SYNC_PRICING)

    page = list_audit_log(page=2, limit=2)
    assert page['total'] == 3
    assert page['total_pages'] == 2
    assert len(page['entries']) == 1

    assert list_audit_log(limit=500)['limit'] == 100
