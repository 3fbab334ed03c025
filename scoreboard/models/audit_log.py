from sqlalchemy import event

from scoreboard.extensions import db
from scoreboard.utils.timeutils import isoformat, utcnow


class AuditLogImmutableError(Exception):
    pass


class AdminAuditLog(db.Model):
    """Append-only record of administrative mutations."""

    __tablename__ = 'admin_audit_log'

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False)
    action = db.Column(db.String(64), nullable=False)
    action_label = db.Column(db.String(128), nullable=True)
    target_user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    admin = db.relationship('User', foreign_keys=[admin_id])
    target_user = db.relationship('User', foreign_keys=[target_user_id])

    __table_args__ = (
        db.Index('idx_admin_audit_admin_action', 'admin_id', 'action'),
        db.Index('idx_admin_audit_created_at', 'created_at'),
        db.Index('idx_admin_audit_target', 'target_user_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'admin_id': self.admin_id,
            'admin_email': self.admin.email if self.admin else None,
            'action': self.action,
            'action_label': self.action_label,
            'target_user_id': self.target_user_id,
            'target_user_email': self.target_user.email if self.target_user else None,
            'details': self.details or {},
            'created_at': isoformat(self.created_at)
        }


@event.listens_for(AdminAuditLog, 'before_update')
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError("Audit log entries cannot be modified")


@event.listens_for(AdminAuditLog, 'before_delete')
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError("Audit log entries cannot be deleted")
