from flask import jsonify

from scoreboard.services.results import UPSTREAM_ERROR

GENERIC_UPSTREAM_MESSAGE = "Our payment provider is unavailable. Please try again later."


def gate_denied(decision):
    """403 body for an entitlement denial."""
    return jsonify(decision.to_dict()), 403


def operation_failed(result, public=False):
    """Render a failed OperationResult. Public callers never see provider detail."""
    body = result.to_error_dict()
    if public:
        body = {'error': result.code, 'message': result.message}
        if result.code == UPSTREAM_ERROR:
            body['message'] = GENERIC_UPSTREAM_MESSAGE
    return jsonify(body), result.http_status


def bad_request(message):
    return jsonify({'error': 'validation_error', 'message': message}), 400


def not_found(message="Not found"):
    return jsonify({'error': 'not_found', 'message': message}), 404
