from flask import Blueprint, jsonify

from scoreboard.extensions import db
from scoreboard.models.scoreboard import Scoreboard
from scoreboard.services.supporter_service import SupporterService

embed_bp = Blueprint("embed", __name__, url_prefix="/api/embed")


@embed_bp.route("/<scoreboard_id>", methods=["GET"])
def get_embed(scoreboard_id):
    """Public, unauthenticated view used by embeds."""
    scoreboard = db.session.get(Scoreboard, scoreboard_id)
    if scoreboard is None:
        return jsonify({'error': 'not_found', 'message': 'Scoreboard not found'}), 404

    if not scoreboard.is_public:
        return jsonify({'error': 'forbidden', 'message': 'Scoreboard not public'}), 403

    owner_is_supporter = SupporterService().is_supporter(scoreboard.owner_id)
    return jsonify({
        'scoreboard': scoreboard.to_dict(),
        'entries': [entry.to_dict() for entry in scoreboard.ranked_entries()],
        'show_powered_by': not owner_is_supporter,
    }), 200
