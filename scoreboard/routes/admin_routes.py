import logging

from flask import Blueprint, current_app, jsonify, request

from scoreboard.audit.logger import list_audit_log
from scoreboard.billing.lemonsqueezy import get_billing_client
from scoreboard.extensions import limiter
from scoreboard.routes.responses import bad_request, operation_failed
from scoreboard.security.auth import admin_required, current_user
from scoreboard.services.pricing_service import PricingService
from scoreboard.services.subscription_admin_service import SubscriptionAdminService

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")
limiter.limit(lambda: current_app.config.get("ADMIN_RATE_LIMIT", "60 per minute"))(admin_bp)


def _service():
    return SubscriptionAdminService(client=get_billing_client())


def _subscription_response(result, status=200):
    if not result.ok:
        return operation_failed(result)
    body = {'success': True, 'subscription': result.data.to_dict()}
    body.update(result.details)
    return jsonify(body), status


@admin_bp.route("/subscriptions", methods=["GET"])
@admin_required
def list_subscriptions():
    result = _service().list_users(
        search=request.args.get("search"),
        filter_name=request.args.get("filter", "all"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    if not result.ok:
        return operation_failed(result)
    return jsonify(result.data), 200


@admin_bp.route("/subscriptions/<user_id>", methods=["GET"])
@admin_required
def get_subscription_detail(user_id):
    result = SubscriptionAdminService().get_user_detail(user_id)
    if not result.ok:
        return operation_failed(result)
    return jsonify(result.data), 200


@admin_bp.route("/subscriptions/<user_id>/cancel", methods=["POST"])
@admin_required
def cancel_subscription(user_id):
    return _subscription_response(_service().cancel(current_user().id, user_id))


@admin_bp.route("/subscriptions/<user_id>/refetch", methods=["POST"])
@admin_required
def refetch_subscription(user_id):
    return _subscription_response(_service().refetch(current_user().id, user_id))


@admin_bp.route("/subscriptions/<user_id>/gift", methods=["POST"])
@admin_required
def gift_appreciation_tier(user_id):
    data = request.get_json(silent=True) or {}
    result = _service().gift(current_user().id, user_id, expires_at=data.get('expires_at'))
    return _subscription_response(result, status=201)


@admin_bp.route("/subscriptions/<user_id>/gift", methods=["DELETE"])
@admin_required
def remove_appreciation_tier(user_id):
    return _subscription_response(_service().remove_gift(current_user().id, user_id))


@admin_bp.route("/subscriptions/verify-link", methods=["POST"])
@admin_required
def verify_link():
    data = request.get_json(silent=True) or {}
    external_id = str(data.get('external_subscription_id') or '').strip()
    if not external_id:
        return bad_request("external_subscription_id is required")

    result = _service().verify_link(external_id)
    if not result.ok:
        return operation_failed(result)
    return jsonify(result.data), 200


@admin_bp.route("/subscriptions/<user_id>/link", methods=["POST"])
@admin_required
def link_subscription(user_id):
    data = request.get_json(silent=True) or {}
    external_id = str(data.get('external_subscription_id') or '').strip()
    if not external_id:
        return bad_request("external_subscription_id is required")

    result = _service().link(
        current_user().id,
        user_id,
        external_id,
        override_email=bool(data.get('override_email', False)),
    )
    return _subscription_response(result)


@admin_bp.route("/audit-log", methods=["GET"])
@admin_required
def get_audit_log():
    page = list_audit_log(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify(page), 200


@admin_bp.route("/pricing/sync", methods=["POST"])
@admin_required
def sync_pricing():
    summary = PricingService().sync_from_provider(get_billing_client(), current_user().id)
    return jsonify({'success': True, **summary}), 200
