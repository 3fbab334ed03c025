import logging

from flask import Blueprint, jsonify, request

from scoreboard.billing.lemonsqueezy import get_billing_client
from scoreboard.domain.tiers import tier_catalog
from scoreboard.routes.responses import bad_request, operation_failed
from scoreboard.security.auth import auth_required, current_user
from scoreboard.services.entitlement_service import DowngradeDetector, get_limits_for_user
from scoreboard.services.plan_change_service import PlanChangeService
from scoreboard.services.pricing_service import PricingService
from scoreboard.services.supporter_service import SupporterService

logger = logging.getLogger(__name__)

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")
pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@billing_bp.route("/status", methods=["GET"])
@auth_required
def billing_status():
    """Profile load: current plan, limits, and downgrade handling."""
    user = current_user()
    was_supporter = bool(user.was_supporter)
    is_supporter = DowngradeDetector().on_profile_load(user)
    subscription = SupporterService().latest_subscription(user.id)

    return jsonify({
        'is_supporter': is_supporter,
        'downgraded': was_supporter and not is_supporter,
        'subscription': subscription.to_dict() if subscription else None,
        'limits': get_limits_for_user(is_supporter).to_dict(),
    }), 200


@billing_bp.route("/change-plan", methods=["POST"])
@auth_required
def change_plan():
    data = request.get_json(silent=True) or {}
    tier = data.get('tier')
    billing_interval = data.get('billing_interval')
    if not tier or not billing_interval:
        return bad_request("tier and billing_interval are required")

    result = PlanChangeService(get_billing_client()).change_plan(current_user(), tier, billing_interval)
    if not result.ok:
        return operation_failed(result, public=True)

    return jsonify({'success': True, 'subscription': result.data.to_dict()}), 200


@pricing_bp.route("", methods=["GET"])
def get_pricing():
    return jsonify({
        'prices': PricingService().get_all_prices(),
        'catalog': tier_catalog(),
    }), 200
