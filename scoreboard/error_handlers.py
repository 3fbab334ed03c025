import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from scoreboard.errors import DomainError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register all error handlers for the application"""

    @app.errorhandler(400)
    def bad_request(e):
        logger.warning(f"Bad request: {str(e)} - Path: {request.path}")
        return jsonify({
            "error": "Bad request",
            "message": "The request could not be understood or was missing required parameters.",
            "path": request.path
        }), 400

    @app.errorhandler(401)
    def unauthorized(e):
        logger.warning(f"Unauthorized: {str(e)} - Path: {request.path}")
        return jsonify({
            "error": "Unauthorized",
            "message": "Authentication is required and has failed or has not been provided.",
            "path": request.path
        }), 401

    @app.errorhandler(403)
    def forbidden(e):
        logger.warning(f"Forbidden: {str(e)} - Path: {request.path}")
        return jsonify({
            "error": "Forbidden",
            "message": "You don't have permission to access this resource.",
            "path": request.path
        }), 403

    @app.errorhandler(404)
    def not_found(e):
        logger.info(f"Not found: {request.path}")
        return jsonify({
            "error": "Not found",
            "message": "The requested resource was not found on the server.",
            "path": request.path
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        logger.warning(f"Method not allowed: {request.method} {request.path}")
        return jsonify({
            "error": "Method not allowed",
            "message": f"The {request.method} method is not supported for this endpoint.",
            "path": request.path
        }), 405

    @app.errorhandler(429)
    def too_many_requests(e):
        logger.warning(f"Too many requests: {str(e)} - Path: {request.path}")
        return jsonify({
            "error": "Too many requests",
            "message": "Rate limit exceeded. Please try again later.",
            "path": request.path
        }), 429

    @app.errorhandler(DomainError)
    def handle_domain_error(error):
        if error.status_code >= 500:
            logger.error(
                f"{error.__class__.__name__}: {error.message} - Path: {request.path}",
                exc_info=error
            )
            message = error.public_message
            payload = {}
        else:
            logger.warning(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")
            message = error.message
            payload = error.payload or {}

        response = jsonify({
            "error": error.error,
            "message": message,
            "path": request.path,
            **payload
        })
        response.status_code = error.status_code
        return response

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return error
        logger.exception(f"Unhandled exception - Path: {request.path}")
        return jsonify({
            "error": "Server error",
            "message": "An internal server error occurred. Please try again later.",
            "path": request.path
        }), 500
