"""
Flask application factory for the scoreboard API.
"""

import logging

import sentry_sdk
from flask import Flask, jsonify
from sentry_sdk.integrations.flask import FlaskIntegration

from scoreboard.config import Environment, get_config
from scoreboard.error_handlers import register_error_handlers
from scoreboard.extensions import init_extensions
from scoreboard.logging_config import setup_logging

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get('SENTRY_DSN')

    if sentry_dsn and app.config.get('ENVIRONMENT') == Environment.PRODUCTION.value:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment="production",
            release=app.config.get('APP_VERSION', '1.0.0'),
            send_default_pii=False,
        )
        logger.info("Sentry error tracking initialized")


def create_app(config_name=None):
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    setup_logging(app)
    setup_sentry(app)
    init_extensions(app)

    # Model metadata must be registered before create_all/migrations
    from scoreboard import models  # noqa: F401
    from scoreboard.routes import register_blueprints

    register_blueprints(app)
    register_error_handlers(app)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({'status': 'ok', 'version': app.config.get('APP_VERSION')}), 200

    logger.info(f"Application created in {app.config.get('ENVIRONMENT')} mode")
    return app
