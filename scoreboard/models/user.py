import uuid

from scoreboard.domain.subscriptions import ADMIN_ROLE
from scoreboard.extensions import db
from scoreboard.utils.timeutils import isoformat, utcnow

ROLE_USER = "user"
ROLE_SYSTEM_ADMIN = ADMIN_ROLE


class User(db.Model):
    """Account profile. Identity itself lives with the auth provider; this row holds role and plan state."""

    __tablename__ = "user_profiles"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default=ROLE_USER)

    # Last supporter verdict observed on profile load; a true -> false flip triggers the downgrade lock
    was_supporter = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            f"role IN ('{ROLE_USER}', '{ROLE_SYSTEM_ADMIN}')",
            name="ck_user_profiles_role"
        ),
    )

    @property
    def is_admin(self):
        return self.role == ROLE_SYSTEM_ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"
