import uuid

from scoreboard.extensions import db
from scoreboard.utils.timeutils import isoformat, utcnow

VISIBILITY_PUBLIC = 'public'
VISIBILITY_PRIVATE = 'private'
VISIBILITIES = (VISIBILITY_PUBLIC, VISIBILITY_PRIVATE)

SORT_ORDERS = ('desc', 'asc')
SCORE_TYPES = ('number', 'time')
STYLE_SCOPES = ('main', 'embed', 'both')


class Scoreboard(db.Model):
    __tablename__ = 'scoreboards'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey('user_profiles.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    visibility = db.Column(db.String(10), nullable=False, default=VISIBILITY_PUBLIC)
    sort_order = db.Column(db.String(4), nullable=False, default='desc')
    score_type = db.Column(db.String(10), nullable=False, default='number')
    time_format = db.Column(db.String(20), nullable=True)
    custom_styles = db.Column(db.JSON, nullable=True)
    style_scope = db.Column(db.String(10), nullable=False, default='both')
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    entries = db.relationship(
        'ScoreboardEntry',
        backref='scoreboard',
        lazy='dynamic',
        cascade='all, delete-orphan'
    )
    kiosk_config = db.relationship(
        'KioskConfig',
        backref='scoreboard',
        uselist=False,
        cascade='all, delete-orphan'
    )

    __table_args__ = (
        db.CheckConstraint("visibility IN ('public', 'private')", name='ck_scoreboards_visibility'),
        db.Index('idx_scoreboards_owner_visibility', 'owner_id', 'visibility', 'is_locked'),
    )

    @property
    def is_public(self):
        return self.visibility == VISIBILITY_PUBLIC

    @property
    def is_private(self):
        return self.visibility == VISIBILITY_PRIVATE

    def ranked_entries(self):
        order = ScoreboardEntry.score.asc() if self.sort_order == 'asc' else ScoreboardEntry.score.desc()
        return self.entries.order_by(order, ScoreboardEntry.created_at.asc()).all()

    def to_dict(self, include_entries=False):
        data = {
            'id': self.id,
            'owner_id': self.owner_id,
            'title': self.title,
            'description': self.description,
            'visibility': self.visibility,
            'sort_order': self.sort_order,
            'score_type': self.score_type,
            'time_format': self.time_format,
            'custom_styles': self.custom_styles,
            'style_scope': self.style_scope,
            'is_locked': self.is_locked,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_entries:
            data['entries'] = [entry.to_dict() for entry in self.ranked_entries()]
        return data


class ScoreboardEntry(db.Model):
    __tablename__ = 'scoreboard_entries'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    scoreboard_id = db.Column(
        db.String(36),
        db.ForeignKey('scoreboards.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    name = db.Column(db.String(200), nullable=False)
    score = db.Column(db.Float, nullable=False, default=0)
    details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'scoreboard_id': self.scoreboard_id,
            'name': self.name,
            'score': self.score,
            'details': self.details,
            'created_at': isoformat(self.created_at),
        }


class KioskConfig(db.Model):
    __tablename__ = 'kiosk_configs'

    MIN_SLIDE_SECONDS = 3
    MAX_SLIDE_SECONDS = 300

    id = db.Column(db.Integer, primary_key=True)
    scoreboard_id = db.Column(
        db.String(36),
        db.ForeignKey('scoreboards.id', ondelete='CASCADE'),
        nullable=False,
        unique=True
    )
    enabled = db.Column(db.Boolean, nullable=False, default=False)
    slide_duration_seconds = db.Column(db.Integer, nullable=False, default=10)
    scoreboard_position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            'slide_duration_seconds >= 3 AND slide_duration_seconds <= 300',
            name='ck_kiosk_configs_slide_duration'
        ),
        db.CheckConstraint('scoreboard_position >= 0', name='ck_kiosk_configs_position'),
    )

    def to_dict(self):
        return {
            'scoreboard_id': self.scoreboard_id,
            'enabled': self.enabled,
            'slide_duration_seconds': self.slide_duration_seconds,
            'scoreboard_position': self.scoreboard_position,
            'updated_at': isoformat(self.updated_at),
        }
