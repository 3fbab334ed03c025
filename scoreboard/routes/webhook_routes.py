import logging

from flask import Blueprint, current_app, jsonify, request

from scoreboard.billing.webhook_security import verify_lemonsqueezy_signature
from scoreboard.extensions import limiter
from scoreboard.routes.responses import operation_failed
from scoreboard.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")
limiter.limit(lambda: current_app.config.get("WEBHOOK_RATE_LIMIT", "120 per minute"))(webhooks_bp)


@webhooks_bp.route("/lemonsqueezy", methods=["POST"])
def lemonsqueezy_webhook():
    payload = request.get_data()
    signature = request.headers.get("X-Signature", "")
    secret = current_app.config.get("LEMONSQUEEZY_WEBHOOK_SECRET", "")

    if not verify_lemonsqueezy_signature(payload, signature, secret):
        logger.warning("Rejected LemonSqueezy webhook with missing or invalid signature")
        return jsonify({'error': 'invalid_signature', 'message': 'Invalid signature'}), 401

    event = request.get_json(silent=True)
    if not isinstance(event, dict):
        return jsonify({'error': 'validation_error', 'message': 'Invalid JSON payload'}), 400

    result = WebhookService().handle_event(event)
    if not result.ok:
        return operation_failed(result)

    return jsonify({'received': True, **result.details}), 200
