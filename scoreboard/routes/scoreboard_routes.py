import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from scoreboard.errors import PersistenceError
from scoreboard.extensions import db
from scoreboard.models.scoreboard import (
    SCORE_TYPES,
    SORT_ORDERS,
    STYLE_SCOPES,
    VISIBILITIES,
    VISIBILITY_PUBLIC,
    KioskConfig,
    Scoreboard,
    ScoreboardEntry,
)
from scoreboard.routes.responses import bad_request, gate_denied, not_found
from scoreboard.security.auth import auth_required, current_user
from scoreboard.services.entitlement_service import EntitlementGate, lock_all_scoreboards

logger = logging.getLogger(__name__)

scoreboards_bp = Blueprint("scoreboards", __name__, url_prefix="/api/scoreboards")

MAX_TITLE_LENGTH = 200
MAX_BULK_ENTRIES = 1000


def _commit(what):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to persist {what}: {e}")
        raise PersistenceError(f"Failed to persist {what}") from e


def _owned_scoreboard(scoreboard_id):
    """The caller's scoreboard, or None when missing or owned by someone else."""
    scoreboard = db.session.get(Scoreboard, scoreboard_id)
    if scoreboard is None or scoreboard.owner_id != current_user().id:
        return None
    return scoreboard


def _parse_scoreboard_fields(data, partial=False):
    """Validate scoreboard fields. Returns (fields, error_message)."""
    fields = {}

    if 'title' in data or not partial:
        title = (data.get('title') or '').strip()
        if not title:
            return None, "Title is required"
        if len(title) > MAX_TITLE_LENGTH:
            return None, f"Title must be at most {MAX_TITLE_LENGTH} characters"
        fields['title'] = title

    if 'description' in data:
        fields['description'] = data.get('description')

    if 'visibility' in data or not partial:
        visibility = data.get('visibility', VISIBILITY_PUBLIC)
        if visibility not in VISIBILITIES:
            return None, "Visibility must be 'public' or 'private'"
        fields['visibility'] = visibility

    choices = (
        ('sort_order', SORT_ORDERS),
        ('score_type', SCORE_TYPES),
        ('style_scope', STYLE_SCOPES),
    )
    for name, allowed in choices:
        if name in data:
            if data[name] not in allowed:
                return None, f"{name} must be one of: {', '.join(allowed)}"
            fields[name] = data[name]

    if 'time_format' in data:
        fields['time_format'] = data.get('time_format')

    if 'custom_styles' in data:
        custom_styles = data.get('custom_styles')
        if custom_styles is not None and not isinstance(custom_styles, dict):
            return None, "custom_styles must be an object"
        fields['custom_styles'] = custom_styles

    return fields, None


def _parse_entry(data):
    name = (data.get('name') or '').strip() if isinstance(data, dict) else ''
    if not name:
        return None, "Entry name is required"
    try:
        score = float(data.get('score', 0))
    except (TypeError, ValueError):
        return None, "Entry score must be a number"
    return {'name': name[:200], 'score': score, 'details': data.get('details')}, None


# ----------------------------------------------------------------------
# Scoreboards
# ----------------------------------------------------------------------
@scoreboards_bp.route("", methods=["GET"])
@auth_required
def list_scoreboards():
    user = current_user()
    gate = EntitlementGate(user.id)
    scoreboards = (
        Scoreboard.query.filter_by(owner_id=user.id)
        .order_by(Scoreboard.created_at.desc())
        .all()
    )
    return jsonify({
        'scoreboards': [s.to_dict() for s in scoreboards],
        'is_supporter': gate.is_supporter,
        'limits': gate.limits.to_dict(),
        'remaining_public_scoreboards': gate.remaining_public_scoreboards(),
    }), 200


@scoreboards_bp.route("", methods=["POST"])
@auth_required
def create_scoreboard():
    user = current_user()
    data = request.get_json(silent=True) or {}

    fields, error = _parse_scoreboard_fields(data)
    if error:
        return bad_request(error)

    decision = EntitlementGate(user.id).check_create_scoreboard(
        visibility=fields['visibility'],
        custom_styles=fields.get('custom_styles'),
    )
    if not decision:
        return gate_denied(decision)

    scoreboard = Scoreboard(owner_id=user.id, is_locked=False, **fields)
    db.session.add(scoreboard)
    _commit("new scoreboard")

    logger.info(f"Scoreboard {scoreboard.id} created by {user.id}")
    return jsonify({'scoreboard': scoreboard.to_dict()}), 201


@scoreboards_bp.route("/<scoreboard_id>", methods=["GET"])
@auth_required
def get_scoreboard(scoreboard_id):
    user = current_user()
    scoreboard = db.session.get(Scoreboard, scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    if scoreboard.owner_id != user.id:
        if not scoreboard.is_public:
            return not_found("Scoreboard not found")
        return jsonify({'scoreboard': scoreboard.to_dict(include_entries=True)}), 200

    decision = EntitlementGate(user.id).check_view_scoreboard(scoreboard)
    if not decision:
        return gate_denied(decision)

    return jsonify({'scoreboard': scoreboard.to_dict(include_entries=True)}), 200


@scoreboards_bp.route("/<scoreboard_id>", methods=["PUT", "PATCH"])
@auth_required
def update_scoreboard(scoreboard_id):
    user = current_user()
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    data = request.get_json(silent=True) or {}
    fields, error = _parse_scoreboard_fields(data, partial=True)
    if error:
        return bad_request(error)

    decision = EntitlementGate(user.id).check_update_scoreboard(
        scoreboard,
        visibility=fields.get('visibility'),
        custom_styles=fields.get('custom_styles'),
    )
    if not decision:
        return gate_denied(decision)

    for name, value in fields.items():
        setattr(scoreboard, name, value)
    _commit(f"scoreboard {scoreboard.id}")

    return jsonify({'scoreboard': scoreboard.to_dict()}), 200


@scoreboards_bp.route("/<scoreboard_id>", methods=["DELETE"])
@auth_required
def delete_scoreboard(scoreboard_id):
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    db.session.delete(scoreboard)
    _commit(f"deletion of scoreboard {scoreboard_id}")
    return jsonify({'success': True}), 200


@scoreboards_bp.route("/<scoreboard_id>/unlock", methods=["POST"])
@auth_required
def unlock_scoreboard(scoreboard_id):
    user = current_user()
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    decision = EntitlementGate(user.id).check_unlock(scoreboard)
    if not decision:
        return gate_denied(decision)

    if scoreboard.is_locked:
        scoreboard.is_locked = False
        _commit(f"unlock of scoreboard {scoreboard.id}")
        logger.info(f"Scoreboard {scoreboard.id} unlocked by {user.id}")

    return jsonify({'success': True, 'scoreboard': scoreboard.to_dict()}), 200


@scoreboards_bp.route("/lock-all", methods=["POST"])
@auth_required
def lock_all():
    locked = lock_all_scoreboards(current_user().id)
    return jsonify({'success': True, 'locked_count': locked}), 200


# ----------------------------------------------------------------------
# Entries
# ----------------------------------------------------------------------
@scoreboards_bp.route("/<scoreboard_id>/entries", methods=["POST"])
@auth_required
def add_entry(scoreboard_id):
    user = current_user()
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    entry_data, error = _parse_entry(request.get_json(silent=True) or {})
    if error:
        return bad_request(error)

    decision = EntitlementGate(user.id).check_add_entries(scoreboard, incoming=1)
    if not decision:
        return gate_denied(decision)

    entry = ScoreboardEntry(scoreboard_id=scoreboard.id, **entry_data)
    db.session.add(entry)
    _commit(f"entry on scoreboard {scoreboard.id}")
    return jsonify({'entry': entry.to_dict()}), 201


@scoreboards_bp.route("/<scoreboard_id>/entries/bulk", methods=["POST"])
@auth_required
def add_entries_bulk(scoreboard_id):
    user = current_user()
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    data = request.get_json(silent=True) or {}
    raw_entries = data.get('entries')
    if not isinstance(raw_entries, list) or not raw_entries:
        return bad_request("entries must be a non-empty list")
    if len(raw_entries) > MAX_BULK_ENTRIES:
        return bad_request(f"At most {MAX_BULK_ENTRIES} entries can be imported at once")

    parsed = []
    for index, raw in enumerate(raw_entries):
        entry_data, error = _parse_entry(raw)
        if error:
            return bad_request(f"Entry {index + 1}: {error}")
        parsed.append(entry_data)

    decision = EntitlementGate(user.id).check_add_entries(scoreboard, incoming=len(parsed))
    if not decision:
        return gate_denied(decision)

    entries = [ScoreboardEntry(scoreboard_id=scoreboard.id, **entry_data) for entry_data in parsed]
    db.session.add_all(entries)
    _commit(f"bulk import on scoreboard {scoreboard.id}")

    logger.info(f"Imported {len(entries)} entries into scoreboard {scoreboard.id}")
    return jsonify({'entries': [e.to_dict() for e in entries], 'count': len(entries)}), 201


@scoreboards_bp.route("/<scoreboard_id>/entries/<entry_id>", methods=["PUT", "PATCH"])
@auth_required
def update_entry(scoreboard_id, entry_id):
    user = current_user()
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    entry = db.session.get(ScoreboardEntry, entry_id)
    if entry is None or entry.scoreboard_id != scoreboard.id:
        return not_found("Entry not found")

    decision = EntitlementGate(user.id).check_scoreboard_mutation(scoreboard)
    if not decision:
        return gate_denied(decision)

    data = request.get_json(silent=True) or {}
    merged = {'name': entry.name, 'score': entry.score, 'details': entry.details, **data}
    entry_data, error = _parse_entry(merged)
    if error:
        return bad_request(error)

    for name, value in entry_data.items():
        setattr(entry, name, value)
    _commit(f"entry {entry.id}")
    return jsonify({'entry': entry.to_dict()}), 200


@scoreboards_bp.route("/<scoreboard_id>/entries/<entry_id>", methods=["DELETE"])
@auth_required
def delete_entry(scoreboard_id, entry_id):
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    entry = db.session.get(ScoreboardEntry, entry_id)
    if entry is None or entry.scoreboard_id != scoreboard.id:
        return not_found("Entry not found")

    db.session.delete(entry)
    _commit(f"deletion of entry {entry_id}")
    return jsonify({'success': True}), 200


# ----------------------------------------------------------------------
# Kiosk
# ----------------------------------------------------------------------
@scoreboards_bp.route("/<scoreboard_id>/kiosk", methods=["GET"])
@auth_required
def get_kiosk_config(scoreboard_id):
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    config = scoreboard.kiosk_config
    if config is None:
        config = KioskConfig(scoreboard_id=scoreboard.id, enabled=False, slide_duration_seconds=10,
                             scoreboard_position=0)
    return jsonify({'kiosk_config': config.to_dict()}), 200


@scoreboards_bp.route("/<scoreboard_id>/kiosk", methods=["PUT"])
@auth_required
def update_kiosk_config(scoreboard_id):
    user = current_user()
    scoreboard = _owned_scoreboard(scoreboard_id)
    if scoreboard is None:
        return not_found("Scoreboard not found")

    decision = EntitlementGate(user.id).check_kiosk_access()
    if not decision:
        return gate_denied(decision)

    data = request.get_json(silent=True) or {}
    config = scoreboard.kiosk_config or KioskConfig(scoreboard_id=scoreboard.id)

    if 'enabled' in data:
        if not isinstance(data['enabled'], bool):
            return bad_request("enabled must be a boolean")
        config.enabled = data['enabled']

    if 'slide_duration_seconds' in data:
        duration = data['slide_duration_seconds']
        if (
            not isinstance(duration, int)
            or isinstance(duration, bool)
            or not KioskConfig.MIN_SLIDE_SECONDS <= duration <= KioskConfig.MAX_SLIDE_SECONDS
        ):
            return bad_request(
                f"slide_duration_seconds must be between {KioskConfig.MIN_SLIDE_SECONDS} "
                f"and {KioskConfig.MAX_SLIDE_SECONDS}"
            )
        config.slide_duration_seconds = duration

    if 'scoreboard_position' in data:
        position = data['scoreboard_position']
        if not isinstance(position, int) or isinstance(position, bool) or position < 0:
            return bad_request("scoreboard_position must be a non-negative integer")
        config.scoreboard_position = position

    if config.id is None:
        db.session.add(config)
    _commit(f"kiosk config for scoreboard {scoreboard.id}")
    return jsonify({'kiosk_config': config.to_dict()}), 200
