"""
Flask extensions initialization module.
"""

import logging

from flask import jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()
limiter = Limiter(key_func=get_remote_address)

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions."""
    db.init_app(app)
    logger.info("SQLAlchemy initialized")

    migrate.init_app(app, db)
    logger.info("Flask-Migrate initialized")

    jwt.init_app(app)
    setup_jwt_callbacks()
    logger.info("JWT Manager initialized")

    init_cors(app)

    limiter.init_app(app)
    if not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiting disabled")

    if app.config.get("CREATE_TABLES_ON_START", False):
        create_tables(app)

    return app


def init_cors(app):
    """Initialize CORS for API routes only."""
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", [])}},
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        supports_credentials=app.config.get("CORS_SUPPORTS_CREDENTIALS", False),
        max_age=600,
    )
    logger.info("CORS initialized")


def setup_jwt_callbacks():
    """Setup JWT callbacks for token validation errors."""

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': 'token_expired',
            'message': 'The token has expired. Please sign in again.'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': 'invalid_token',
            'message': 'Invalid token. Please provide a valid authentication token.'
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': 'authorization_required',
            'message': 'Authentication required. Please provide a valid token.'
        }), 401


def create_tables(app):
    """Create database tables (development convenience; production uses migrations)."""
    with app.app_context():
        import scoreboard.models  # noqa: F401

        db.create_all()
        logger.info("Database tables created/verified")
