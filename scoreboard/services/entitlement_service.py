"""
Free-plan enforcement for scoreboards.

Checks return a GateDecision instead of raising: a denial is a normal
business outcome that the caller renders (403 with reason, message and
upgrade link), not a fault.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.models.scoreboard import VISIBILITY_PRIVATE, VISIBILITY_PUBLIC, Scoreboard, ScoreboardEntry
from scoreboard.services.supporter_service import SupporterService

logger = logging.getLogger(__name__)

DEFAULT_UPGRADE_URL = "/supporter-plan"

STYLE_PRESETS = ("light", "dark", "transparent", "high-contrast", "minimal")


@dataclass(frozen=True)
class PlanLimits:
    max_public_scoreboards: Optional[int]
    max_private_scoreboards: Optional[int]
    max_entries_per_scoreboard: Optional[int]
    max_snapshots: Optional[int]
    custom_themes: bool
    kiosk_mode: bool

    def to_dict(self):
        return {
            'max_public_scoreboards': self.max_public_scoreboards,
            'max_private_scoreboards': self.max_private_scoreboards,
            'max_entries_per_scoreboard': self.max_entries_per_scoreboard,
            'max_snapshots': self.max_snapshots,
            'custom_themes': self.custom_themes,
            'kiosk_mode': self.kiosk_mode,
        }


# None means unlimited
FREE_LIMITS = PlanLimits(
    max_public_scoreboards=2,
    max_private_scoreboards=0,
    max_entries_per_scoreboard=50,
    max_snapshots=10,
    custom_themes=False,
    kiosk_mode=False,
)

SUPPORTER_LIMITS = PlanLimits(
    max_public_scoreboards=None,
    max_private_scoreboards=None,
    max_entries_per_scoreboard=None,
    max_snapshots=100,
    custom_themes=True,
    kiosk_mode=True,
)


def get_limits_for_user(is_supporter):
    return SUPPORTER_LIMITS if is_supporter else FREE_LIMITS


class DenialReason(str, Enum):
    LOCKED = "locked"
    LIMIT_REACHED = "limit_reached"


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    upgrade_url: Optional[str] = None

    @classmethod
    def allow(cls):
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason, message):
        return cls(allowed=False, reason=reason, message=message, upgrade_url=_upgrade_url())

    def __bool__(self):
        return self.allowed

    def to_dict(self):
        return {
            'error': self.reason.value if self.reason else None,
            'message': self.message,
            'upgrade_url': self.upgrade_url,
        }


def _upgrade_url():
    if has_app_context():
        return current_app.config.get("UPGRADE_URL", DEFAULT_UPGRADE_URL)
    return DEFAULT_UPGRADE_URL


def is_custom_theme(custom_styles):
    """A theme is custom when it names a preset other than the built-in ones."""
    if not custom_styles or not isinstance(custom_styles, dict):
        return False
    preset = custom_styles.get("preset")
    if preset is None:
        return False
    return preset not in STYLE_PRESETS


def lock_all_scoreboards(owner_id, session=None):
    """Flag every scoreboard of an owner as locked in a single UPDATE. Returns the row count."""
    session = session or db.session
    try:
        result = session.execute(
            update(Scoreboard)
            .where(Scoreboard.owner_id == owner_id)
            .values(is_locked=True)
            .execution_options(synchronize_session="fetch")
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to lock scoreboards for owner {owner_id}: {e}")
        raise PersistenceError(f"Failed to lock scoreboards for owner {owner_id}") from e

    logger.info(f"Locked {result.rowcount} scoreboards for owner {owner_id}")
    return result.rowcount


class EntitlementGate:
    """Plan-limit checks for one owner, evaluated within a single request."""

    def __init__(self, owner_id, session=None, is_supporter=None):
        self.owner_id = owner_id
        self.session = session or db.session
        self._is_supporter = is_supporter

    @property
    def is_supporter(self):
        if self._is_supporter is None:
            self._is_supporter = SupporterService(self.session).is_supporter(self.owner_id)
        return self._is_supporter

    @property
    def limits(self):
        return get_limits_for_user(self.is_supporter)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------
    def count_unlocked_public_scoreboards(self, exclude_id=None):
        query = self.session.query(Scoreboard).filter(
            Scoreboard.owner_id == self.owner_id,
            Scoreboard.visibility == VISIBILITY_PUBLIC,
            Scoreboard.is_locked.is_(False),
        )
        if exclude_id is not None:
            query = query.filter(Scoreboard.id != exclude_id)
        return query.count()

    def count_entries(self, scoreboard):
        return (
            self.session.query(ScoreboardEntry)
            .filter(ScoreboardEntry.scoreboard_id == scoreboard.id)
            .count()
        )

    def remaining_public_scoreboards(self):
        limit = self.limits.max_public_scoreboards
        if limit is None:
            return None
        return max(limit - self.count_unlocked_public_scoreboards(), 0)

    def remaining_entries(self, scoreboard):
        limit = self.limits.max_entries_per_scoreboard
        if limit is None:
            return None
        return max(limit - self.count_entries(scoreboard), 0)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def check_create_scoreboard(self, visibility=VISIBILITY_PUBLIC, custom_styles=None):
        if self.is_supporter:
            return GateDecision.allow()

        if visibility == VISIBILITY_PRIVATE:
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                "Private scoreboards require a Supporter plan."
            )

        max_public = FREE_LIMITS.max_public_scoreboards
        if self.count_unlocked_public_scoreboards() >= max_public:
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                f"You've reached the maximum of {max_public} public scoreboards on the free plan."
            )

        if is_custom_theme(custom_styles):
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                "Custom themes require a Supporter plan."
            )

        return GateDecision.allow()

    def check_scoreboard_mutation(self, scoreboard):
        if self.is_supporter:
            return GateDecision.allow()
        if scoreboard.is_locked or scoreboard.is_private:
            return GateDecision.deny(
                DenialReason.LOCKED,
                "This scoreboard is locked on the Free plan."
            )
        return GateDecision.allow()

    def check_update_scoreboard(self, scoreboard, visibility=None, custom_styles=None):
        decision = self.check_scoreboard_mutation(scoreboard)
        if not decision or self.is_supporter:
            return decision

        if visibility == VISIBILITY_PRIVATE:
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                "Private scoreboards require a Supporter plan."
            )

        if is_custom_theme(custom_styles):
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                "Custom themes require a Supporter plan."
            )

        return GateDecision.allow()

    def check_view_scoreboard(self, scoreboard):
        if self.is_supporter or not scoreboard.is_private:
            return GateDecision.allow()
        return GateDecision.deny(
            DenialReason.LOCKED,
            "This scoreboard is locked on the Free plan."
        )

    def check_add_entries(self, scoreboard, incoming=1):
        decision = self.check_scoreboard_mutation(scoreboard)
        if not decision or self.is_supporter:
            return decision

        max_entries = FREE_LIMITS.max_entries_per_scoreboard
        current = self.count_entries(scoreboard)
        if current + incoming > max_entries:
            if incoming == 1:
                message = f"You've reached the maximum of {max_entries} entries on the free plan."
            else:
                message = (
                    f"Import would exceed the {max_entries}-entry limit. "
                    f"Currently {current} entries, trying to add {incoming}."
                )
            return GateDecision.deny(DenialReason.LIMIT_REACHED, message)

        return GateDecision.allow()

    def check_unlock(self, scoreboard):
        if self.is_supporter:
            return GateDecision.allow()

        if not scoreboard.is_public:
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                "Private scoreboards require a Supporter plan."
            )

        if not scoreboard.is_locked:
            return GateDecision.allow()

        max_public = FREE_LIMITS.max_public_scoreboards
        if self.count_unlocked_public_scoreboards(exclude_id=scoreboard.id) >= max_public:
            return GateDecision.deny(
                DenialReason.LIMIT_REACHED,
                f"You've reached the maximum of {max_public} public scoreboards on the free plan."
            )

        return GateDecision.allow()

    def check_kiosk_access(self):
        if self.is_supporter:
            return GateDecision.allow()
        return GateDecision.deny(
            DenialReason.LIMIT_REACHED,
            "Kiosk mode requires a Supporter plan."
        )


class DowngradeDetector:
    """Locks an owner's scoreboards the first time they are seen without supporter status."""

    def __init__(self, session=None):
        self.session = session or db.session

    def on_profile_load(self, user, now=None):
        """Returns the current supporter verdict; locks all boards on a supporter -> free transition."""
        is_supporter = SupporterService(self.session).is_supporter(user, now=now)
        was_supporter = bool(user.was_supporter)

        if was_supporter and not is_supporter:
            logger.info(f"Supporter downgrade detected for user {user.id}")
            lock_all_scoreboards(user.id, session=self.session)

        if was_supporter != is_supporter:
            user.was_supporter = is_supporter
            try:
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                raise PersistenceError(f"Failed to record supporter state for {user.id}") from e

        return is_supporter
